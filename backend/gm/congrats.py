from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from gm.context import (
    context_snapshot,
    load_adventure_context,
    load_chapter_context,
    load_chapter_quest_scope,
    load_player_context,
    load_quest_context,
    require_quest_owner,
)
from gm.errors import GenerationError, require_user, require_value, safe_trim
from gm.pipeline import GenerationScope, JournalSpec, PromptSpec, run_generation
from gm.prompts import (
    GAME_INTRO,
    NO_META,
    STRICT_JSON,
    block_header,
    build_context_prompt,
    context_lines,
    difficulty_label,
    join_sections,
    player_name_line,
    resolve_voice,
    verbosity_rules,
    voice_line,
)
from gm.threads import post_quest_message
from llm.client import OpenAIClient
from llm.schemas import QUEST_MESSAGE_JSON_SCHEMA, QuestMessageJson, parse_quest_message

CONGRAT_ROLE = """
Ton rôle:
- Donner du sens aux actions accomplies
- Marquer les victoires sans emphase artificielle
- Transformer une réussite en ancrage durable
""".strip()

CONGRAT_TASK = "\n".join(
    [
        block_header("📐 TÂCHE DEMANDÉE / TEXTE À GÉNÉRER"),
        "Ta tâche maintenant est d'écrire des **FÉLICITATIONS** pour une quête TERMINÉE.",
        "Les détails de la quête sont fournis dans le bloc **🎯 CONTEXTE DE QUÊTE**.",
        "",
        "Des félicitations doivent:",
        "- reconnaître l'effort et la traversée, pas seulement le résultat",
        "- rester sobres, humaines, ancrées",
        "- renforcer le sentiment de progression",
        "- proposer UNE micro-projection (une seule phrase, pas une liste)",
        "- garder un ton RPG moderne, incarné",
    ]
)

CONGRAT_CONSTRAINTS = "\n".join(
    [
        block_header("📐 CONTRAINTES DE SORTIE"),
        "Tu dois produire un JSON conforme au schéma attendu.",
        "",
        "Règles:",
        '- "title": court, impactant (2 à 6 mots), style sceau / étape validée',
        '- "message": 3 à 7 lignes max',
        "- Termine par UNE micro-projection claire (une seule phrase)",
        "- Emojis sobres (0 à 2)",
        "",
        "INTERDICTIONS STRICTES:",
        "- Pas de meta, pas de mention d'IA",
        "- Pas de conseils vagues",
        "- Pas de checklist",
        "- Pas de conditionnel mou",
    ]
)


def generate_congrats_for_quest(
    db: Session,
    user_id: str | None,
    *,
    chapter_quest_id: str | None,
    quest_title: str | None = None,
    room_code: str | None = None,
    difficulty: int | None = None,
    mission_md: str | None = None,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    """Congratulations prefetched when a quest starts, shown in the renown modal.

    Nothing is stored besides the audit row.
    """
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")

    player = load_player_context(db, user_id)
    character = player.character
    voice = resolve_voice(character)
    rules = verbosity_rules(voice.verbosity)
    scope = require_quest_owner(db, user_id, load_chapter_quest_scope(db, chapter_quest_id))

    system_text = join_sections(
        [
            "Tu es le Maître du Jeu de Renaissance.",
            "Tu écris des FÉLICITATIONS pour une quête terminée.",
            "Objectif: célébrer sans sucre inutile, ancrer la victoire, "
            "donner une micro-projection (1 phrase max).",
            "Style: RPG moderne, concret, humain. Emojis sobres.",
            voice_line(character, voice),
            player_name_line(player.display_name),
            (
                f"Serment du personnage (à refléter sans le citer mot pour mot): {character.motto}"
                if character and character.motto
                else None
            ),
            *context_lines(scope.adventure_context_text, scope.chapter_context_text),
            None
            if scope.adventure_context_text or scope.chapter_context_text
            else "Contexte global: non fourni.",
            f"Contraintes: {rules.min} à {rules.max} lignes max.",
            "Termine par une micro-projection (une seule phrase, pas une liste).",
            NO_META,
            STRICT_JSON,
        ]
    )
    quest = {
        "quest_title": safe_trim(quest_title),
        "room_code": room_code,
        "difficulty": difficulty_label(difficulty),
        "mission_hint": safe_trim(mission_md)[:900] or None,
        "session_id": scope.session_id,
        "chapter_id": scope.chapter_id,
        "adventure_id": scope.adventure_id,
    }
    user_text = (
        f"Contexte:\n{json.dumps(quest, ensure_ascii=False, indent=2)}\n\n"
        "Génère:\n"
        "- title (court, 2 à 6 mots, style “sceau”)\n"
        "- message (félicitations)\n"
    )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="congrats",
            source="generate_congrats_for_quest",
            system_text=system_text,
            user_text=user_text,
            schema_name="quest_congrats_v1",
            schema=QUEST_MESSAGE_JSON_SCHEMA,
        ),
        GenerationScope(
            session_id=scope.session_id,
            user_id=user_id,
            chapter_quest_id=chapter_quest_id,
            chapter_id=scope.chapter_id,
            adventure_id=scope.adventure_id,
        ),
        parse_quest_message,
        context=context_snapshot(player=player, quest=quest),
        tags=["congrats"],
    )
    return {
        "congrats": result.value.model_dump(),
        "meta": {
            "model": result.model,
            "tone": voice.tone,
            "style": voice.style,
            "verbosity": voice.verbosity,
            "character_name": character.name if character else None,
            "character_emoji": character.emoji if character else None,
        },
    }


def generate_quest_congrat(
    db: Session,
    user_id: str | None,
    chapter_quest_id: str | None,
    *,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")

    scope = require_quest_owner(db, user_id, load_chapter_quest_scope(db, chapter_quest_id))
    if not scope.session_id:
        raise GenerationError("Invalid chapter_quest")
    session_id = scope.session_id

    player = load_player_context(db, user_id)
    character = player.character
    quest = load_quest_context(db, chapter_quest_id)
    chapter = load_chapter_context(db, scope.chapter_id)
    adventure = load_adventure_context(db, scope.adventure_id)

    rules = verbosity_rules(character.verbosity if character else None)
    system_text = join_sections(
        [
            GAME_INTRO,
            CONGRAT_ROLE,
            CONGRAT_TASK,
            build_context_prompt(
                player=player,
                character=character,
                adventure=adventure,
                chapter=chapter,
                quest=quest,
            ),
            CONGRAT_CONSTRAINTS,
            f"Indice de longueur: {rules.min} à {rules.max} lignes.",
        ]
    )
    user_text = (
        "Génère des félicitations JSON conformes au schéma.\n"
        "Sois incarné, sobre, mémorable.\n"
    )

    def persist(parsed: QuestMessageJson) -> dict[str, str]:
        return post_quest_message(
            db,
            session_id=session_id,
            chapter_quest_id=chapter_quest_id,
            kind="congrat",
            title=parsed.title,
            content=parsed.message,
        )

    def journal(parsed: QuestMessageJson) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title=f"🏆 {parsed.title}",
            content=parsed.message,
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
        )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="congrat",
            source="generate_quest_congrat",
            system_text=system_text,
            user_text=user_text,
            schema_name="quest_congrat_message_v1",
            schema=QUEST_MESSAGE_JSON_SCHEMA,
        ),
        GenerationScope(
            session_id=session_id,
            user_id=user_id,
            chapter_quest_id=chapter_quest_id,
            chapter_id=scope.chapter_id,
            adventure_id=scope.adventure_id,
        ),
        parse_quest_message,
        context=context_snapshot(
            player=player,
            character=character,
            quest=quest,
            chapter=chapter,
            adventure=adventure,
        ),
        tags=["congrat", "quest_thread"],
        persist=persist,
        journal=journal,
    )
    return {
        "chapter_quest_id": chapter_quest_id,
        "session_id": session_id,
        "thread_id": result.persisted["thread_id"],
        "message_id": result.persisted["message_id"],
        "congrat_json": result.value.model_dump(),
        "model": result.model,
    }
