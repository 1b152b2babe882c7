"""Generic runner shared by every AI generation.

A run is a straight line: build the request, call the model once, read the
output text, parse it. The audit row and the journal entry written around a
run are best effort; the parsed value or the original exception always wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session

from audit.ai_generations import AiGenerationInput, create_ai_generation_log
from audit.journal import create_journal_entry
from gm.errors import GenerationError
from llm.client import LLMClientError, OpenAIClient, output_text

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PromptSpec:
    generation_type: str
    source: str
    system_text: str
    user_text: str
    schema_name: str | None = None
    schema: dict[str, Any] | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class GenerationScope:
    session_id: str | None = None
    user_id: str | None = None
    chapter_quest_id: str | None = None
    chapter_id: str | None = None
    adventure_id: str | None = None


@dataclass(frozen=True)
class JournalSpec:
    kind: str
    title: str
    content: str | None = None
    chapter_id: str | None = None
    quest_id: str | None = None
    adventure_quest_id: str | None = None
    adventure_id: str | None = None
    meta: dict[str, Any] | None = None


@dataclass
class GenerationResult(Generic[T]):
    value: T
    model: str
    duration_ms: int
    output_text: str | None = None
    response: dict[str, Any] = field(default_factory=dict)
    log_id: str | None = None
    persisted: Any = None


def best_effort(label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``fn`` and return its result, or log and return None on failure."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.warning("%s.failed (ignored)", label, exc_info=True)
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_json(value: Any) -> dict[str, Any] | None:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return value
    return None


def _write_log(
    db: Session,
    scope: GenerationScope,
    entry: AiGenerationInput,
) -> str | None:
    if not scope.session_id:
        logger.info(
            "ai_log.skipped reason=no_session type=%s user_id=%s",
            entry.generation_type,
            scope.user_id,
        )
        return None
    row = best_effort("ai_log", create_ai_generation_log, db, entry)
    return row.id if row is not None else None


def write_journal(db: Session, scope: GenerationScope, spec: JournalSpec | None) -> None:
    if spec is None:
        return
    if not scope.session_id:
        logger.info("journal.skipped reason=no_session kind=%s", spec.kind)
        return
    best_effort(
        "journal",
        create_journal_entry,
        db,
        session_id=scope.session_id,
        kind=spec.kind,
        title=spec.title,
        content=spec.content,
        chapter_id=spec.chapter_id,
        quest_id=spec.quest_id,
        adventure_quest_id=spec.adventure_quest_id,
        adventure_id=spec.adventure_id,
        meta=spec.meta,
    )


def _journal(
    db: Session,
    scope: GenerationScope,
    build: Callable[[Any], JournalSpec | None],
    arg: Any,
) -> None:
    write_journal(db, scope, best_effort("journal.build", build, arg))


def run_generation(
    db: Session,
    client: OpenAIClient,
    prompt: PromptSpec,
    scope: GenerationScope,
    parse: Callable[[str | None], T],
    *,
    context: dict[str, Any] | None = None,
    tags: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
    persist: Callable[[T], Any] | None = None,
    journal: Callable[[T], JournalSpec | None] | None = None,
    journal_on_error: Callable[[Exception], JournalSpec | None] | None = None,
) -> GenerationResult[T]:
    payload = client.build_request(
        system_text=prompt.system_text,
        user_text=prompt.user_text,
        schema_name=prompt.schema_name,
        schema=prompt.schema,
        image_url=prompt.image_url,
    )
    base = dict(
        session_id=scope.session_id or "",
        user_id=scope.user_id,
        chapter_quest_id=scope.chapter_quest_id,
        chapter_id=scope.chapter_id,
        adventure_id=scope.adventure_id,
        generation_type=prompt.generation_type,
        source=prompt.source,
        provider=client.provider,
        model=client.model,
        request_json=payload,
        system_text=prompt.system_text,
        user_input_text=prompt.user_text,
        context_json=context,
        tags=tags,
        metadata=dict(metadata or {}),
    )

    logger.info(
        "generation.start type=%s source=%s session_id=%s model=%s",
        prompt.generation_type,
        prompt.source,
        scope.session_id,
        client.model,
    )
    started_at = _utcnow()
    started = time.perf_counter()
    response: dict[str, Any] | None = None
    text: str | None = None
    parse_error: str | None = None
    try:
        response = client.create_response(payload)
        text = output_text(response)
        try:
            value = parse(text)
        except GenerationError as exc:
            parse_error = str(exc)
            raise
        except (LLMClientError, ValueError) as exc:
            parse_error = str(exc)
            raise GenerationError(f"Invalid {prompt.generation_type} output: {exc}") from exc
    except Exception as exc:
        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.warning(
            "generation.failed type=%s ms=%d error=%s",
            prompt.generation_type,
            duration_ms,
            exc,
        )
        _write_log(
            db,
            scope,
            AiGenerationInput(
                **base,
                status="error",
                error_message=str(exc),
                error_code=type(exc).__name__,
                started_at=started_at,
                finished_at=_utcnow(),
                duration_ms=duration_ms,
                response_json=response,
                output_text=text,
                parse_error=parse_error,
            ),
        )
        if journal_on_error is not None:
            _journal(db, scope, journal_on_error, exc)
        raise

    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "generation.ok type=%s ms=%d chars=%d",
        prompt.generation_type,
        duration_ms,
        len(text or ""),
    )
    usage = response.get("usage") if isinstance(response, dict) else None
    log_id = _write_log(
        db,
        scope,
        AiGenerationInput(
            **base,
            status="success",
            started_at=started_at,
            finished_at=_utcnow(),
            duration_ms=duration_ms,
            response_json=response,
            output_text=text,
            parsed_json=_as_json(value),
            rendered_md=value if isinstance(value, str) else None,
            usage_json=usage if isinstance(usage, dict) else None,
        ),
    )

    persisted = persist(value) if persist is not None else None
    if journal is not None:
        _journal(db, scope, journal, value)

    return GenerationResult(
        value=value,
        model=client.model,
        duration_ms=duration_ms,
        output_text=text,
        response=response or {},
        log_id=log_id,
        persisted=persisted,
    )
