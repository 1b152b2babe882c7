from __future__ import annotations

import json
import os
from typing import Any

import requests

DEFAULT_MODEL = "gpt-4.1"


class LLMClientError(RuntimeError):
    pass


class OpenAIClient:
    """Thin client for the OpenAI Responses endpoint.

    One call, one response: no retries, no streaming. Callers own parsing and
    audit logging of the returned payload.
    """

    provider = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or ""
        self.base_url = (
            base_url or os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1"
        ).rstrip("/")
        self.model = model or os.getenv("OPENAI_MODEL") or DEFAULT_MODEL
        if timeout is None:
            timeout = int(os.getenv("OPENAI_TIMEOUT", "60"))
        self.timeout = timeout

    def build_request(
        self,
        *,
        system_text: str,
        user_text: str,
        schema_name: str | None = None,
        schema: dict[str, Any] | None = None,
        image_url: str | None = None,
    ) -> dict[str, Any]:
        user_content: list[dict[str, str]] = [{"type": "input_text", "text": user_text}]
        if image_url:
            user_content.append({"type": "input_image", "image_url": image_url})
        payload: dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": system_text}]},
                {"role": "user", "content": user_content},
            ],
        }
        if schema is not None:
            payload["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": schema_name or "output_v1",
                    "schema": schema,
                }
            }
        return payload

    def create_response(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/responses"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise LLMClientError(f"OpenAI request failed: {exc}") from exc
        except ValueError as exc:
            raise LLMClientError("Invalid response from OpenAI.") from exc
        if not isinstance(data, dict):
            raise LLMClientError("Invalid response from OpenAI.")
        return data


def output_text(response: dict[str, Any] | None) -> str | None:
    if not isinstance(response, dict):
        return None
    text = response.get("output_text")
    if isinstance(text, str):
        return text

    parts: list[str] = []
    for item in response.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and content.get("type") == "output_text":
                value = content.get("text")
                if isinstance(value, str):
                    parts.append(value)
    return "".join(parts) if parts else None


def parse_json_object(content: str | None) -> dict[str, Any]:
    if not content:
        raise LLMClientError("Empty output text.")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise LLMClientError(f"Invalid JSON output: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise LLMClientError("JSON output is not an object.")
    return data
