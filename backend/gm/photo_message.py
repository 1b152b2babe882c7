"""Game Master reaction to a proof photo posted on a chapter quest.

The model sees the photo itself, describes it cautiously and answers with an
encouragement tied to the quest. The description is kept on the photo row and
the answer is posted in the quest thread.
"""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from gm.context import (
    context_snapshot,
    load_chapter_quest_scope,
    load_player_context,
    load_quest_context,
    require_quest_owner,
)
from gm.errors import (
    GenerationError,
    InvalidInputError,
    NotFoundError,
    require_user,
    require_value,
    safe_trim,
)
from gm.pipeline import GenerationScope, JournalSpec, PromptSpec, run_generation
from gm.prompts import (
    NO_META,
    STRICT_JSON,
    LineRange,
    context_lines,
    difficulty_label,
    join_sections,
    player_name_line,
    resolve_voice,
    voice_line,
)
from gm.threads import post_quest_message
from llm.client import OpenAIClient
from llm.schemas import (
    QUEST_PHOTO_MESSAGE_JSON_SCHEMA,
    PhotoQuestMessageJson,
    parse_photo_quest_message,
)
from models import Photo
from services.photos import ALLOWED_CATEGORIES

CATEGORY_LABELS = {"initial": "photo initiale", "final": "photo finale"}


def photo_category_label(category: str | None) -> str:
    return CATEGORY_LABELS.get(category or "", "photo")


def photo_line_range(verbosity: str | None) -> LineRange:
    key = (verbosity or "").strip().lower()
    if key == "short":
        return LineRange(3, 6)
    if key == "rich":
        return LineRange(6, 12)
    return LineRange(4, 10)


def _load_photo(db: Session, photo_id: str | None, session_id: str) -> Photo | None:
    if not photo_id:
        return None
    photo = db.get(Photo, photo_id)
    if photo is None or photo.session_id != session_id:
        raise NotFoundError("Photo not found")
    return photo


def generate_photo_quest_message(
    db: Session,
    user_id: str | None,
    *,
    chapter_quest_id: str | None,
    photo_signed_url: str | None,
    photo_id: str | None = None,
    photo_category: str | None = None,
    photo_caption: str | None = None,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")
    photo_signed_url = require_value(photo_signed_url, "photo_signed_url")

    scope = require_quest_owner(db, user_id, load_chapter_quest_scope(db, chapter_quest_id))
    if not scope.exists:
        raise NotFoundError("Chapter quest not found")
    if not scope.session_id:
        raise GenerationError("Missing session_id on chapter_quests")
    session_id = scope.session_id

    photo = _load_photo(db, safe_trim(photo_id) or None, session_id)
    category = safe_trim(photo_category) or (photo.category if photo else "other")
    if category not in ALLOWED_CATEGORIES:
        raise InvalidInputError("Invalid photo_category")
    caption = safe_trim(photo_caption) or (safe_trim(photo.caption) if photo else "") or None
    photo_ref = photo.id if photo else None

    player = load_player_context(db, user_id)
    character = player.character
    voice = resolve_voice(character)
    rules = photo_line_range(voice.verbosity)
    quest = load_quest_context(db, chapter_quest_id)

    system_text = join_sections(
        [
            "Tu es le Maître du Jeu de Renaissance.",
            "Tu reçois une photo envoyée comme preuve d'avancement d'une quête.",
            "Objectif: (1) Décrire la photo de façon prudente et factuelle (pas d'invention), "
            "(2) Encourager le joueur et relier au contexte de l'aventure.",
            "Style: RPG moderne, concret, humain. Emojis sobres.",
            voice_line(character, voice),
            player_name_line(player.display_name),
            *context_lines(scope.adventure_context_text, scope.chapter_context_text),
            (
                f"Serment (à refléter sans citer mot pour mot): {character.motto}"
                if character and character.motto
                else None
            ),
            "Contraintes de sortie:",
            '- description: 2 à 5 phrases max, factuel, prudent ("on dirait", "il semble").',
            f"- message: {rules.min} à {rules.max} lignes, "
            "encouragement + 1 micro-consigne finale.",
            "Interdit: jugements blessants, contenu inventé.",
            NO_META,
            STRICT_JSON,
        ]
    )
    context = {
        "photo": {
            "id": photo_ref,
            "category": category,
            "category_label": photo_category_label(category),
            "caption": caption,
        },
        "quest": {
            "title": quest.title,
            "description": quest.description,
            "room_code": quest.room_code,
            "difficulty": difficulty_label(quest.difficulty),
            "mission_hint": safe_trim(quest.mission_md)[:800] or None,
        },
        "session_id": session_id,
        "chapter_id": scope.chapter_id,
        "adventure_id": scope.adventure_id,
        "adventure_quest_id": scope.adventure_quest_id,
    }
    user_text = (
        f"Contexte:\n{json.dumps(context, ensure_ascii=False, indent=2)}\n\n"
        "Analyse la photo fournie et génère:\n"
        "- title (2 à 5 mots)\n"
        "- description (2 à 5 phrases prudentes)\n"
        "- message (encouragement + 1 micro-consigne finale)\n"
    )
    meta = {"photo_id": photo_ref, "photo_category": category, "chapter_quest_id": chapter_quest_id}

    def persist(parsed: PhotoQuestMessageJson) -> dict[str, str]:
        posted = post_quest_message(
            db,
            session_id=session_id,
            chapter_quest_id=chapter_quest_id,
            kind="photo",
            title=parsed.title,
            content=parsed.message,
            photo_id=photo_ref,
        )
        if photo is not None:
            photo.ai_description = parsed.description
            db.flush()
        return posted

    def journal(parsed: PhotoQuestMessageJson) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title=f"🎭 {parsed.title}",
            content=f"{parsed.description}\n\n{parsed.message}",
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
            meta=meta,
        )

    def journal_on_error(exc: Exception) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title="⚠️ Le MJ n'a pas pu lire la preuve",
            content=f"Échec analyse photo: {exc}",
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
            meta=meta,
        )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="quest_photo_message",
            source="generate_photo_quest_message",
            system_text=system_text,
            user_text=user_text,
            schema_name="quest_photo_message_v1",
            schema=QUEST_PHOTO_MESSAGE_JSON_SCHEMA,
            image_url=photo_signed_url,
        ),
        GenerationScope(
            session_id=session_id,
            user_id=user_id,
            chapter_quest_id=chapter_quest_id,
            chapter_id=scope.chapter_id,
            adventure_id=scope.adventure_id,
        ),
        parse_photo_quest_message,
        context=context_snapshot(player=player, quest=quest, photo=context["photo"]),
        tags=["quest", "photo", "mj"],
        metadata={
            "tone": voice.tone,
            "style": voice.style,
            "verbosity": voice.verbosity,
            "character_name": character.name if character else None,
            "character_emoji": character.emoji if character else None,
            "photo_id": photo_ref,
            "photo_category": category,
        },
        persist=persist,
        journal=journal,
        journal_on_error=journal_on_error,
    )
    return {
        "chapter_quest_id": chapter_quest_id,
        "session_id": session_id,
        "photo_id": photo_ref,
        "thread_id": result.persisted["thread_id"],
        "message_id": result.persisted["message_id"],
        "mj_message": result.value.model_dump(),
        "meta": {
            "model": result.model,
            "tone": voice.tone,
            "style": voice.style,
            "verbosity": voice.verbosity,
            "character_name": character.name if character else None,
            "character_emoji": character.emoji if character else None,
        },
    }
