"""Context loaders for Game Master prompts.

Loaders never raise for missing rows: absent parents simply leave the
dependent fields as ``None`` and prompt quality degrades instead of the
generation being blocked. Only one level of parent lookup is attempted
from a chapter quest (its chapter, its adventure quest, their adventure).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy.orm import Session

from gm.errors import NotFoundError, safe_trim
from models import (
    Adventure,
    AdventureQuest,
    Chapter,
    ChapterQuest,
    Character,
    PlayerProfile,
)
from services.sessions import user_owns_session

DEFAULT_GM_NAME = "Maître du Jeu"
DEFAULT_QUEST_TITLE = "Quête"


@dataclass(frozen=True)
class CharacterContext:
    name: str
    emoji: str | None = None
    archetype: str | None = None
    vibe: str | None = None
    motto: str | None = None
    tone: str | None = None
    style: str | None = None
    verbosity: str | None = None


@dataclass(frozen=True)
class PlayerContext:
    display_name: str | None = None
    context_self: str | None = None
    context_family: str | None = None
    context_home: str | None = None
    context_routine: str | None = None
    context_challenges: str | None = None
    character: CharacterContext | None = None


@dataclass(frozen=True)
class AdventureContext:
    adventure_id: str
    session_id: str | None = None
    title: str | None = None
    description: str | None = None
    context_text: str | None = None


@dataclass(frozen=True)
class ChapterContext:
    chapter_id: str
    adventure_id: str | None = None
    title: str | None = None
    context_text: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class QuestContext:
    chapter_quest_id: str
    adventure_quest_id: str | None = None
    title: str = DEFAULT_QUEST_TITLE
    description: str | None = None
    room_code: str | None = None
    difficulty: int | None = None
    mission_md: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class QuestScope:
    chapter_quest_id: str
    exists: bool = False
    session_id: str | None = None
    chapter_id: str | None = None
    adventure_id: str | None = None
    adventure_quest_id: str | None = None
    adventure_context_text: str | None = None
    chapter_context_text: str | None = None


def _text_or_none(value: object) -> str | None:
    return safe_trim(value) or None


def _character_from_row(character: Character) -> CharacterContext:
    ai_style = character.ai_style if isinstance(character.ai_style, dict) else {}
    return CharacterContext(
        name=_text_or_none(character.name) or DEFAULT_GM_NAME,
        emoji=_text_or_none(character.emoji),
        archetype=_text_or_none(character.archetype),
        vibe=_text_or_none(character.vibe),
        motto=_text_or_none(character.motto),
        tone=_text_or_none(ai_style.get("tone")),
        style=_text_or_none(ai_style.get("style")),
        verbosity=_text_or_none(ai_style.get("verbosity")),
    )


def load_player_context(db: Session, user_id: str) -> PlayerContext:
    profile = db.get(PlayerProfile, user_id)
    if profile is None:
        return PlayerContext()
    character = db.get(Character, profile.character_id) if profile.character_id else None
    return PlayerContext(
        display_name=_text_or_none(profile.display_name),
        context_self=_text_or_none(profile.context_self),
        context_family=_text_or_none(profile.context_family),
        context_home=_text_or_none(profile.context_home),
        context_routine=_text_or_none(profile.context_routine),
        context_challenges=_text_or_none(profile.context_challenges),
        character=_character_from_row(character) if character else None,
    )


def load_adventure_context(db: Session, adventure_id: str | None) -> AdventureContext | None:
    if not adventure_id:
        return None
    adventure = db.get(Adventure, adventure_id)
    if adventure is None:
        return None
    return AdventureContext(
        adventure_id=adventure.id,
        session_id=adventure.session_id,
        title=_text_or_none(adventure.title),
        description=_text_or_none(adventure.description),
        context_text=_text_or_none(adventure.context_text),
    )


def load_chapter_context(db: Session, chapter_id: str | None) -> ChapterContext | None:
    if not chapter_id:
        return None
    chapter = db.get(Chapter, chapter_id)
    if chapter is None:
        return None
    return ChapterContext(
        chapter_id=chapter.id,
        adventure_id=chapter.adventure_id,
        title=_text_or_none(chapter.title),
        context_text=_text_or_none(chapter.context_text),
        status=chapter.status,
    )


def load_quest_context(db: Session, chapter_quest_id: str) -> QuestContext:
    chapter_quest = db.get(ChapterQuest, chapter_quest_id)
    if chapter_quest is None:
        return QuestContext(chapter_quest_id=chapter_quest_id)
    mission_md = _text_or_none(chapter_quest.mission_md)
    quest = (
        db.get(AdventureQuest, chapter_quest.adventure_quest_id)
        if chapter_quest.adventure_quest_id
        else None
    )
    if quest is None:
        return QuestContext(
            chapter_quest_id=chapter_quest_id,
            adventure_quest_id=chapter_quest.adventure_quest_id,
            mission_md=mission_md,
            status=chapter_quest.status,
        )
    return QuestContext(
        chapter_quest_id=chapter_quest_id,
        adventure_quest_id=quest.id,
        title=_text_or_none(quest.title) or DEFAULT_QUEST_TITLE,
        description=_text_or_none(quest.description),
        room_code=quest.room_code,
        difficulty=quest.difficulty,
        mission_md=mission_md,
        status=chapter_quest.status,
    )


def load_chapter_quest_scope(db: Session, chapter_quest_id: str) -> QuestScope:
    chapter_quest = db.get(ChapterQuest, chapter_quest_id)
    if chapter_quest is None:
        return QuestScope(chapter_quest_id=chapter_quest_id)

    chapter = load_chapter_context(db, chapter_quest.chapter_id)
    quest = (
        db.get(AdventureQuest, chapter_quest.adventure_quest_id)
        if chapter_quest.adventure_quest_id
        else None
    )
    adventure_id = (quest.adventure_id if quest else None) or (
        chapter.adventure_id if chapter else None
    )
    adventure = load_adventure_context(db, adventure_id)
    return QuestScope(
        chapter_quest_id=chapter_quest_id,
        exists=True,
        session_id=chapter_quest.session_id,
        chapter_id=chapter_quest.chapter_id,
        adventure_id=adventure_id,
        adventure_quest_id=chapter_quest.adventure_quest_id,
        adventure_context_text=adventure.context_text if adventure else None,
        chapter_context_text=chapter.context_text if chapter else None,
    )


def require_quest_owner(db: Session, user_id: str, scope: QuestScope) -> QuestScope:
    """Reject a chapter quest that lives in another user's session.

    Unknown quests and quests without a session pass through untouched.
    """
    if scope.session_id and not user_owns_session(db, user_id, scope.session_id):
        raise NotFoundError("Chapter quest not found")
    return scope


def context_snapshot(**contexts: object) -> dict:
    """Flatten loaded contexts into a JSON-able dict for the audit log."""
    snapshot: dict = {}
    for key, value in contexts.items():
        if value is None:
            snapshot[key] = None
        elif hasattr(value, "__dataclass_fields__"):
            snapshot[key] = asdict(value)
        else:
            snapshot[key] = value
    return snapshot
