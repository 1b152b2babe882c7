from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from gm.errors import MissingInputError, safe_trim
from models import AiGeneration

logger = logging.getLogger(__name__)

LIST_LIMIT_MAX = 200


@dataclass
class AiGenerationInput:
    session_id: str
    generation_type: str
    model: str
    request_json: dict[str, Any]
    status: Literal["success", "error"]
    user_id: str | None = None
    source: str | None = None
    chapter_quest_id: str | None = None
    chapter_id: str | None = None
    adventure_id: str | None = None
    provider: str = "openai"
    error_message: str | None = None
    error_code: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    system_text: str | None = None
    user_input_text: str | None = None
    context_json: dict[str, Any] | None = None
    response_json: dict[str, Any] | None = None
    output_text: str | None = None
    parsed_json: dict[str, Any] | None = None
    parse_error: str | None = None
    rendered_md: str | None = None
    usage_json: dict[str, Any] | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def create_ai_generation_log(db: Session, entry: AiGenerationInput) -> AiGeneration:
    session_id = safe_trim(entry.session_id)
    if not session_id:
        raise MissingInputError("Missing session_id")
    if not entry.generation_type:
        raise MissingInputError("Missing generation_type")
    if not entry.model:
        raise MissingInputError("Missing model")
    if not entry.request_json:
        raise MissingInputError("Missing request_json")

    started = time.perf_counter()
    row = AiGeneration(
        session_id=session_id,
        user_id=entry.user_id,
        chapter_quest_id=entry.chapter_quest_id,
        chapter_id=entry.chapter_id,
        adventure_id=entry.adventure_id,
        generation_type=entry.generation_type,
        source=entry.source,
        provider=entry.provider or "openai",
        model=entry.model,
        status=entry.status,
        error_message=entry.error_message,
        error_code=entry.error_code,
        started_at=entry.started_at,
        finished_at=entry.finished_at,
        duration_ms=entry.duration_ms,
        request_json=entry.request_json,
        system_text=entry.system_text,
        user_input_text=entry.user_input_text,
        context_json=entry.context_json,
        response_json=entry.response_json,
        output_text=entry.output_text,
        parsed_json=entry.parsed_json,
        parse_error=entry.parse_error,
        rendered_md=entry.rendered_md,
        usage_json=entry.usage_json,
        tags=entry.tags,
        metadata_json=entry.metadata or None,
    )
    with db.begin_nested():
        db.add(row)
    logger.debug(
        "ai_log.insert.ok id=%s type=%s status=%s model=%s ms=%d",
        row.id,
        row.generation_type,
        row.status,
        row.model,
        int((time.perf_counter() - started) * 1000),
    )
    return row


def list_ai_generations(
    db: Session,
    *,
    q: str | None = None,
    generation_type: str | None = None,
    status: str | None = None,
    model: str | None = None,
    limit: int = 25,
    offset: int = 0,
) -> tuple[list[AiGeneration], int]:
    query = db.query(AiGeneration)
    if generation_type:
        query = query.filter(AiGeneration.generation_type == generation_type)
    if model:
        query = query.filter(AiGeneration.model == model)
    if status in {"success", "error"}:
        query = query.filter(AiGeneration.status == status)
    if q:
        pattern = f"%{q}%"
        query = query.filter(
            or_(
                AiGeneration.id.ilike(pattern),
                AiGeneration.session_id.ilike(pattern),
                AiGeneration.user_id.ilike(pattern),
                AiGeneration.adventure_id.ilike(pattern),
                AiGeneration.chapter_id.ilike(pattern),
                AiGeneration.chapter_quest_id.ilike(pattern),
            )
        )
    total = query.count()
    rows = (
        query.order_by(AiGeneration.created_at.desc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 0), LIST_LIMIT_MAX))
        .all()
    )
    return rows, total


def summarize_generation(row: AiGeneration) -> dict[str, Any]:
    return {
        "id": row.id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "session_id": row.session_id,
        "user_id": row.user_id,
        "generation_type": row.generation_type,
        "source": row.source,
        "provider": row.provider,
        "model": row.model,
        "status": row.status,
        "duration_ms": row.duration_ms,
        "error_message": row.error_message,
        "error_code": row.error_code,
        "chapter_quest_id": row.chapter_quest_id,
        "chapter_id": row.chapter_id,
        "adventure_id": row.adventure_id,
    }


def serialize_generation(row: AiGeneration) -> dict[str, Any]:
    payload = summarize_generation(row)
    payload.update(
        {
            "started_at": row.started_at.isoformat() if row.started_at else None,
            "finished_at": row.finished_at.isoformat() if row.finished_at else None,
            "request_json": row.request_json,
            "system_text": row.system_text,
            "user_input_text": row.user_input_text,
            "context_json": row.context_json,
            "response_json": row.response_json,
            "output_text": row.output_text,
            "parsed_json": row.parsed_json,
            "parse_error": row.parse_error,
            "rendered_md": row.rendered_md,
            "usage_json": row.usage_json,
            "tags": row.tags,
            "metadata": row.metadata_json,
        }
    )
    return payload
