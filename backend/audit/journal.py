from __future__ import annotations

import logging
from typing import Any, Literal, get_args

from sqlalchemy.orm import Session

from gm.errors import MissingInputError, safe_trim
from models import JournalEntry

logger = logging.getLogger(__name__)

JournalKind = Literal[
    "adventure_created",
    "quests_seeded",
    "chapter_created",
    "chapter_started",
    "quest_started",
    "quest_done",
    "quest_reopened",
    "quest_photo_added",
    "note",
    "system",
]

JOURNAL_KINDS = set(get_args(JournalKind))


def create_journal_entry(
    db: Session,
    *,
    session_id: str | None,
    kind: str,
    title: str | None,
    content: str | None = None,
    chapter_id: str | None = None,
    quest_id: str | None = None,
    adventure_quest_id: str | None = None,
    adventure_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> JournalEntry:
    session_id = safe_trim(session_id)
    title = safe_trim(title)
    if not session_id:
        raise MissingInputError("Missing session_id")
    if kind not in JOURNAL_KINDS:
        raise MissingInputError("Missing kind")
    if not title:
        raise MissingInputError("Missing title")

    entry = JournalEntry(
        session_id=session_id,
        kind=kind,
        title=title,
        content=content,
        chapter_id=chapter_id,
        quest_id=quest_id,
        adventure_quest_id=adventure_quest_id,
        adventure_id=adventure_id,
        meta=meta,
    )
    with db.begin_nested():
        db.add(entry)
    logger.debug("journal.insert.ok id=%s kind=%s session_id=%s", entry.id, kind, session_id)
    return entry


def list_journal_entries(
    db: Session,
    session_id: str,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[JournalEntry]:
    return (
        db.query(JournalEntry)
        .filter(JournalEntry.session_id == session_id)
        .order_by(JournalEntry.created_at.desc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 200))
        .all()
    )


def serialize_journal_entry(entry: JournalEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "session_id": entry.session_id,
        "kind": entry.kind,
        "title": entry.title,
        "content": entry.content,
        "chapter_id": entry.chapter_id,
        "quest_id": entry.quest_id,
        "adventure_quest_id": entry.adventure_quest_id,
        "adventure_id": entry.adventure_id,
        "meta": entry.meta,
    }
