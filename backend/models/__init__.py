from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class GameSession(Base):
    __tablename__ = "game_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(160), nullable=False, default="Ma partie")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str | None] = mapped_column(String(80), unique=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    emoji: Mapped[str | None] = mapped_column(String(16))
    archetype: Mapped[str | None] = mapped_column(String(120))
    vibe: Mapped[str | None] = mapped_column(String(160))
    motto: Mapped[str | None] = mapped_column(Text)
    ai_style: Mapped[dict | None] = mapped_column(JSONType)


class PlayerProfile(Base):
    __tablename__ = "player_profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(120))
    character_id: Mapped[str | None] = mapped_column(ForeignKey("characters.id"))
    context_self: Mapped[str | None] = mapped_column(Text)
    context_family: Mapped[str | None] = mapped_column(Text)
    context_home: Mapped[str | None] = mapped_column(Text)
    context_routine: Mapped[str | None] = mapped_column(Text)
    context_challenges: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Adventure(Base):
    __tablename__ = "adventures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str | None] = mapped_column(ForeignKey("game_sessions.id"))
    title: Mapped[str | None] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text)
    context_text: Mapped[str | None] = mapped_column(Text)
    welcome_text: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Chapter(Base):
    __tablename__ = "chapters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str | None] = mapped_column(ForeignKey("game_sessions.id"))
    adventure_id: Mapped[str | None] = mapped_column(ForeignKey("adventures.id"))
    title: Mapped[str | None] = mapped_column(String(160))
    chapter_code: Mapped[str | None] = mapped_column(String(80))
    context_text: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AdventureQuest(Base):
    __tablename__ = "adventure_quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str | None] = mapped_column(ForeignKey("game_sessions.id"))
    adventure_id: Mapped[str | None] = mapped_column(ForeignKey("adventures.id"))
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    room_code: Mapped[str | None] = mapped_column(String(80))
    difficulty: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ChapterQuest(Base):
    __tablename__ = "chapter_quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str | None] = mapped_column(ForeignKey("game_sessions.id"))
    chapter_id: Mapped[str | None] = mapped_column(ForeignKey("chapters.id"))
    adventure_quest_id: Mapped[str | None] = mapped_column(ForeignKey("adventure_quests.id"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="todo")
    mission_md: Mapped[str | None] = mapped_column(Text)
    mission_json: Mapped[dict | None] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AiGeneration(Base):
    __tablename__ = "ai_generations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36))
    chapter_quest_id: Mapped[str | None] = mapped_column(String(36))
    chapter_id: Mapped[str | None] = mapped_column(String(36))
    adventure_id: Mapped[str | None] = mapped_column(String(36))
    generation_type: Mapped[str] = mapped_column(String(80), nullable=False)
    source: Mapped[str | None] = mapped_column(String(120))
    provider: Mapped[str] = mapped_column(String(40), nullable=False, default="openai")
    model: Mapped[str] = mapped_column(String(80), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    error_code: Mapped[str | None] = mapped_column(String(80))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    request_json: Mapped[dict] = mapped_column(JSONType, nullable=False)
    system_text: Mapped[str | None] = mapped_column(Text)
    user_input_text: Mapped[str | None] = mapped_column(Text)
    context_json: Mapped[dict | None] = mapped_column(JSONType)
    response_json: Mapped[dict | None] = mapped_column(JSONType)
    output_text: Mapped[str | None] = mapped_column(Text)
    parsed_json: Mapped[dict | None] = mapped_column(JSONType)
    parse_error: Mapped[str | None] = mapped_column(Text)
    rendered_md: Mapped[str | None] = mapped_column(Text)
    usage_json: Mapped[dict | None] = mapped_column(JSONType)
    tags: Mapped[list | None] = mapped_column(JSONType)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSONType)


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str | None] = mapped_column(Text)
    chapter_id: Mapped[str | None] = mapped_column(String(36))
    quest_id: Mapped[str | None] = mapped_column(String(36))
    adventure_quest_id: Mapped[str | None] = mapped_column(String(36))
    adventure_id: Mapped[str | None] = mapped_column(String(36))
    meta: Mapped[dict | None] = mapped_column(JSONType)


class QuestThread(Base):
    __tablename__ = "quest_threads"
    __table_args__ = (UniqueConstraint("session_id", "chapter_quest_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    chapter_quest_id: Mapped[str] = mapped_column(ForeignKey("chapter_quests.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class QuestMessage(Base):
    __tablename__ = "quest_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(ForeignKey("quest_threads.id"), nullable=False)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    chapter_quest_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="mj")
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    photo_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    chapter_quest_id: Mapped[str | None] = mapped_column(String(36), index=True)
    adventure_quest_id: Mapped[str | None] = mapped_column(String(36))
    bucket: Mapped[str] = mapped_column(String(80), nullable=False, default="photos")
    path: Mapped[str | None] = mapped_column(String(400))
    mime_type: Mapped[str | None] = mapped_column(String(80))
    size: Mapped[int | None] = mapped_column(Integer)
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)
    caption: Mapped[str | None] = mapped_column(Text)
    is_cover: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    ai_description: Mapped[str | None] = mapped_column(Text)
