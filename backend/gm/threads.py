from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from gm.errors import require_value
from models import QuestMessage, QuestThread

logger = logging.getLogger(__name__)


def ensure_quest_thread(db: Session, session_id: str, chapter_quest_id: str) -> str:
    session_id = require_value(session_id, "session_id")
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")

    existing = db.scalars(
        select(QuestThread.id).where(
            QuestThread.session_id == session_id,
            QuestThread.chapter_quest_id == chapter_quest_id,
        )
    ).first()
    if existing:
        return existing

    thread = QuestThread(session_id=session_id, chapter_quest_id=chapter_quest_id)
    db.add(thread)
    db.flush()
    logger.debug("quest_thread.created id=%s chapter_quest_id=%s", thread.id, chapter_quest_id)
    return thread.id


def create_quest_message(
    db: Session,
    *,
    thread_id: str,
    session_id: str,
    chapter_quest_id: str,
    kind: str,
    title: str | None,
    content: str,
    role: str = "mj",
    photo_id: str | None = None,
) -> QuestMessage:
    message = QuestMessage(
        thread_id=thread_id,
        session_id=session_id,
        chapter_quest_id=chapter_quest_id,
        role=role,
        kind=kind,
        title=title,
        content=content,
        photo_id=photo_id,
    )
    db.add(message)
    db.flush()
    return message


def post_quest_message(
    db: Session,
    *,
    session_id: str,
    chapter_quest_id: str,
    kind: str,
    title: str,
    content: str,
    photo_id: str | None = None,
) -> dict[str, str]:
    thread_id = ensure_quest_thread(db, session_id, chapter_quest_id)
    message = create_quest_message(
        db,
        thread_id=thread_id,
        session_id=session_id,
        chapter_quest_id=chapter_quest_id,
        kind=kind,
        title=title,
        content=content,
        photo_id=photo_id,
    )
    logger.info(
        "quest_message.created id=%s kind=%s chapter_quest_id=%s",
        message.id,
        kind,
        chapter_quest_id,
    )
    return {"thread_id": thread_id, "message_id": message.id}
