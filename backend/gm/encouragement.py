from __future__ import annotations

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
from gm.errors import require_user, require_value
from gm.pipeline import GenerationScope, JournalSpec, PromptSpec, run_generation
from gm.prompts import (
    GAME_INTRO,
    block_header,
    build_context_prompt,
    join_sections,
    verbosity_rules,
)
from gm.threads import post_quest_message
from llm.client import OpenAIClient
from llm.schemas import QUEST_MESSAGE_JSON_SCHEMA, QuestMessageJson, parse_quest_message

ENCOURAGEMENT_ROLE = """
Ton rôle:
- Donner du sens aux actions du joueur
- Transformer son quotidien en aventure
- Créer un lien émotionnel avec le jeu
""".strip()

ENCOURAGEMENT_TASK = "\n".join(
    [
        block_header("📐 TÂCHE DEMANDÉE / TEXTE À GÉNÉRER"),
        "Ta tâche maintenant est d'écrire un **ENCOURAGEMENT** pour une quête en cours.",
        "Les détails de la quête en cours sont dans le bloc **🎯 CONTEXTE DE QUÊTE**.",
        "",
        "Un encouragement doit:",
        "- rebooster le joueur dans sa quête, sans juger",
        "- recentrer l'attention",
        "- donner UN mini prochain pas (une micro-consigne unique, pas une liste)",
        "- rester concret et humain, avec une touche RPG moderne",
    ]
)

ENCOURAGEMENT_CONSTRAINTS = "\n".join(
    [
        block_header("📐 CONTRAINTES DE SORTIE"),
        "Tu dois produire un JSON conforme au schéma attendu.",
        "",
        "Règles:",
        '- "title": très court (2 à 5 mots)',
        '- "message": court, impactant, 3 à 7 lignes max',
        "- Termine par UNE micro-consigne claire (un seul pas), pas une liste",
        "- Emojis sobres (0 à 2)",
        "",
        "INTERDICTIONS STRICTES:",
        "- Pas de meta, pas de mention d'IA, pas de prompt",
        "- Pas d'hésitations, pas de conditionnel mou",
        "- Pas de conseils vagues",
    ]
)


def generate_encouragement_quest_message(
    db: Session,
    user_id: str | None,
    chapter_quest_id: str | None,
    *,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")

    scope = require_quest_owner(db, user_id, load_chapter_quest_scope(db, chapter_quest_id))
    session_id = scope.session_id

    player = load_player_context(db, user_id)
    character = player.character
    quest = load_quest_context(db, chapter_quest_id)
    adventure = load_adventure_context(db, scope.adventure_id)
    chapter = load_chapter_context(db, scope.chapter_id)

    rules = verbosity_rules(character.verbosity if character else None)
    system_text = join_sections(
        [
            GAME_INTRO,
            ENCOURAGEMENT_ROLE,
            ENCOURAGEMENT_TASK,
            build_context_prompt(
                player=player,
                character=character,
                adventure=adventure,
                chapter=chapter,
                quest=quest,
            ),
            ENCOURAGEMENT_CONSTRAINTS,
            f"Indice de longueur: {rules.min} à {rules.max} lignes.",
        ]
    )
    user_text = (
        "Génère un encouragement JSON conforme au schéma.\n"
        "Sois incarné, concret, et termine par un seul prochain pas.\n"
    )

    def persist(parsed: QuestMessageJson) -> dict[str, str]:
        return post_quest_message(
            db,
            session_id=session_id,
            chapter_quest_id=chapter_quest_id,
            kind="encouragement",
            title=parsed.title,
            content=parsed.message,
        )

    def journal(parsed: QuestMessageJson) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title=f"💪 {parsed.title}",
            content=parsed.message,
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
            adventure_id=scope.adventure_id,
        )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="encouragement",
            source="generate_encouragement_quest_message",
            system_text=system_text,
            user_text=user_text,
            schema_name="quest_encouragement_v1",
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
            adventure=adventure,
            chapter=chapter,
        ),
        tags=["encouragement", "quest_thread"],
        persist=persist if session_id else None,
        journal=journal,
    )
    posted = result.persisted or {}
    return {
        "chapter_quest_id": chapter_quest_id,
        "session_id": session_id,
        "thread_id": posted.get("thread_id"),
        "message_id": posted.get("message_id"),
        "encouragement_json": result.value.model_dump(),
        "model": result.model,
    }
