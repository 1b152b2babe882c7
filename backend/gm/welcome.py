from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from gm.context import (
    context_snapshot,
    load_adventure_context,
    load_player_context,
)
from gm.errors import GenerationError, NotFoundError, require_user, require_value
from gm.pipeline import GenerationScope, JournalSpec, PromptSpec, run_generation
from gm.prompts import GAME_INTRO, block_header, build_context_prompt, join_sections
from llm.client import OpenAIClient
from models import Adventure
from services.sessions import user_owns_session

WELCOME_ROLE = """
Ton rôle:
- Donner du sens aux actions du joueur
- Transformer son quotidien en aventure
- Créer un lien émotionnel avec le jeu
""".strip()

WELCOME_TASK = """
Ta tâche maintenant est d'écrire un **message de bienvenue**.
Ce message est lu une seule fois, lors de l'onboarding.

Il doit:
- Accueillir le joueur
- Présenter le Maître du Jeu
- Présenter l'aventure en cours
- Donner envie de jouer et de continuer
""".strip()

WELCOME_CONSTRAINTS = "\n".join(
    [
        block_header("📐 CONTRAINTES DE SORTIE"),
        "- Écris en **markdown**",
        "- Adresse-toi directement au joueur",
        "- Reste incarné dans la voix du Maître du Jeu",
        "- Ton texte doit être clair, immersif et motivant",
        "- Longueur recommandée: 3 à 6 paragraphes",
        "- Tu peux utiliser des titres courts et des paragraphes aérés",
        "",
        "INTERDICTIONS STRICTES:",
        "- Ne parle jamais d'IA ou de prompt",
        "- Ne mentionne pas de règles techniques",
        "- Ne liste pas les contextes explicitement",
        "- Ne fais pas de conclusion fermée (le jeu commence)",
    ]
)


def parse_markdown(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise GenerationError("Empty welcome message")
    return cleaned


def generate_welcome_message(
    db: Session,
    user_id: str | None,
    adventure_id: str | None,
    *,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    user_id = require_user(user_id)
    adventure_id = require_value(adventure_id, "adventure_id")

    adventure_row = db.get(Adventure, adventure_id)
    if adventure_row is None or (
        adventure_row.session_id
        and not user_owns_session(db, user_id, adventure_row.session_id)
    ):
        raise NotFoundError("Adventure not found")
    session_id = adventure_row.session_id
    if not session_id:
        raise GenerationError("Missing session_id on adventures")

    adventure = load_adventure_context(db, adventure_id)
    player = load_player_context(db, user_id)
    character = player.character
    adventure_title = (adventure.title if adventure else None) or "—"

    system_text = join_sections(
        [
            GAME_INTRO,
            WELCOME_ROLE,
            WELCOME_TASK,
            build_context_prompt(player=player, character=character, adventure=adventure),
            WELCOME_CONSTRAINTS,
        ]
    )
    user_text = (
        "Génère le message de bienvenue en Markdown.\n"
        "Important: reflète la voix du MJ et utilise le contexte fourni.\n"
    )

    def persist(welcome_md: str) -> None:
        adventure_row.welcome_text = welcome_md
        db.flush()

    def journal(_: str) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title="👋 Message de bienvenue généré",
            content=(
                "Le MJ a rédigé le message de bienvenue.\n"
                f"Aventure: {adventure_title}\n"
                f"Modèle: {client.model}"
            ),
            adventure_id=adventure_id,
        )

    def journal_on_error(exc: Exception) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title="👋 Message de bienvenue (erreur IA)",
            content=(
                "Échec génération welcome message.\n"
                f"Aventure: {adventure_title}\n"
                f"Erreur: {exc}"
            ),
            adventure_id=adventure_id,
        )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="welcome_message",
            source="generate_welcome_message",
            system_text=system_text,
            user_text=user_text,
        ),
        GenerationScope(session_id=session_id, user_id=user_id, adventure_id=adventure_id),
        parse_markdown,
        context=context_snapshot(adventure=adventure, player=player, character=character),
        metadata={"saved_to_adventures": True},
        persist=persist,
        journal=journal,
        journal_on_error=journal_on_error,
    )
    return {
        "adventure_id": adventure_id,
        "session_id": session_id,
        "welcome_text": result.value,
    }
