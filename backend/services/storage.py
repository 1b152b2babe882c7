from __future__ import annotations

import logging
import os
from typing import Any

import requests

logger = logging.getLogger(__name__)

PHOTOS_BUCKET = "photos"
SIGNED_URL_TTL_SECONDS = 60 * 30


class StorageError(RuntimeError):
    pass


class SupabaseStorage:
    """Minimal Supabase Storage REST client using the service role key."""

    def __init__(
        self,
        *,
        url: str | None = None,
        service_key: str | None = None,
        bucket: str = PHOTOS_BUCKET,
        timeout: int = 30,
    ) -> None:
        self.url = (url or os.getenv("SUPABASE_URL") or "").rstrip("/")
        self.service_key = service_key or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or ""
        self.bucket = bucket
        self.timeout = timeout

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        if not self.url:
            raise StorageError("SUPABASE_URL is not configured")
        try:
            response = requests.request(
                method,
                f"{self.url}/storage/v1{path}",
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise StorageError(f"Storage request failed: {exc}") from exc
        return response

    def upload(self, path: str, data: bytes, content_type: str | None) -> None:
        self._request(
            "POST",
            f"/object/{self.bucket}/{path}",
            data=data,
            headers=self._headers(
                **{
                    "Content-Type": content_type or "application/octet-stream",
                    "x-upsert": "true",
                }
            ),
        )

    def remove(self, paths: list[str]) -> None:
        self._request(
            "DELETE",
            f"/object/{self.bucket}",
            json={"prefixes": paths},
            headers=self._headers(),
        )

    def create_signed_url(self, path: str, expires_in: int = SIGNED_URL_TTL_SECONDS) -> str:
        response = self._request(
            "POST",
            f"/object/sign/{self.bucket}/{path}",
            json={"expiresIn": expires_in},
            headers=self._headers(),
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise StorageError("Storage returned an invalid signed URL response") from exc
        signed = data.get("signedURL") if isinstance(data, dict) else None
        if not signed:
            raise StorageError("Storage did not return a signed URL")
        return f"{self.url}/storage/v1{signed}"
