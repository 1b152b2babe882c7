from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import GameSession


def get_active_session(db: Session, user_id: str) -> GameSession | None:
    return db.scalars(
        select(GameSession)
        .where(GameSession.user_id == user_id, GameSession.is_active.is_(True))
        .order_by(GameSession.created_at.desc())
    ).first()


def get_active_or_latest_session(db: Session, user_id: str) -> GameSession | None:
    session = get_active_session(db, user_id)
    if session is not None:
        return session
    return db.scalars(
        select(GameSession)
        .where(GameSession.user_id == user_id)
        .order_by(GameSession.created_at.desc())
    ).first()


def user_owns_session(db: Session, user_id: str, session_id: str | None) -> bool:
    if not session_id:
        return False
    owner = db.scalar(select(GameSession.user_id).where(GameSession.id == session_id))
    return owner is not None and owner == user_id
