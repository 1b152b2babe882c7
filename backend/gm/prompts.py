from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from gm.context import (
    AdventureContext,
    ChapterContext,
    CharacterContext,
    PlayerContext,
    QuestContext,
)

RULE = "════════════════════════════════════"

GAME_INTRO = """
Tu es le Maître du Jeu de **Renaissance**.

Renaissance est un jeu de rôle appliqué à la vie réelle.
Le joueur progresse en accomplissant des actions concrètes, organisées en quêtes,
chapitres et aventures, guidé par un Maître du Jeu incarné.
""".strip()

CONTEXT_PRECEDENCE = (
    "Si un contexte global d'aventure et un contexte de chapitre existent, "
    "respecte d'abord le contexte global, puis affine avec le contexte du chapitre."
)

NO_META = "Interdit: disclaimer, \"en tant qu'IA\", explications techniques, meta."
STRICT_JSON = "La sortie doit respecter STRICTEMENT le schéma JSON demandé."


@dataclass(frozen=True)
class LineRange:
    min: int
    max: int


@dataclass(frozen=True)
class Voice:
    tone: str
    style: str
    verbosity: str


def clean_line(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def join_sections(sections: Iterable[str | None]) -> str:
    return "\n".join(section for section in sections if section)


def block_header(title: str) -> str:
    return "\n".join([RULE, title, RULE])


def verbosity_rules(verbosity: str | None) -> LineRange:
    key = (verbosity or "").strip().lower()
    if key in {"short", "concise"}:
        return LineRange(2, 4)
    if key in {"rich", "verbose"}:
        return LineRange(4, 8)
    return LineRange(3, 7)


def difficulty_label(difficulty: int | None) -> str:
    if difficulty is None:
        return "Standard"
    if difficulty <= 1:
        return "Facile"
    if difficulty == 2:
        return "Standard"
    return "Difficile"


def resolve_voice(
    character: CharacterContext | None,
    *,
    tone: str = "neutre",
    style: str = "motivant",
    verbosity: str = "normal",
) -> Voice:
    if character is None:
        return Voice(tone=tone, style=style, verbosity=verbosity)
    return Voice(
        tone=character.tone or tone,
        style=character.style or style,
        verbosity=character.verbosity or verbosity,
    )


def voice_line(character: CharacterContext | None, voice: Voice) -> str:
    if character is None:
        return "Voix: neutre."
    return (
        f"Voix: {character.emoji or '🧙'} {character.name}. "
        f"Tone={voice.tone}, style={voice.style}, verbosity={voice.verbosity}."
    )


def player_name_line(display_name: str | None) -> str:
    if display_name:
        return f'Le joueur s\'appelle "{display_name}". Utilise son nom 0 à 1 fois maximum.'
    return "Le joueur n'a pas de nom affiché. N'invente pas de prénom."


def context_lines(
    adventure_text: str | None,
    chapter_text: str | None,
) -> list[str | None]:
    """Global context first, then local context, then the precedence rule."""
    return [
        f"CONTEXTE GLOBAL D'AVENTURE:\n{adventure_text}" if adventure_text else None,
        f"CONTEXTE DU CHAPITRE:\n{chapter_text}" if chapter_text else None,
        CONTEXT_PRECEDENCE if adventure_text and chapter_text else None,
    ]


def _player_block(player: PlayerContext) -> list[str]:
    lines = [
        block_header("🧠 CONTEXTE DU JOUEUR (à respecter en priorité)"),
        "Voici les informations fournies par le joueur pour se décrire lui et son contexte.",
        "Ne récite jamais ces informations comme une fiche brute: intègre-les naturellement.",
    ]
    name = clean_line(player.display_name)
    if name:
        lines.append(f"🏷️ Nom du joueur: {name} (0 à 2 fois maximum, seulement si pertinent)")
    else:
        lines.append("🏷️ Nom du joueur: (non renseigné)")
    labelled = [
        ("👤 Joueur", player.context_self),
        ("👨‍👩‍👧 Famille", player.context_family),
        ("🏠 Foyer", player.context_home),
        ("⏱️ Quotidien", player.context_routine),
        ("⚠️ Défis actuels", player.context_challenges),
    ]
    for label, value in labelled:
        if value:
            lines.append(f"{label}: {clean_line(value)}")
    return lines


def _character_block(character: CharacterContext) -> list[str]:
    voice = resolve_voice(character, style="clair", verbosity="standard")
    lines = [
        block_header("🎭 STYLE DU MAÎTRE DU JEU"),
        "Tu incarnes cette voix. Ta réponse doit sonner comme une intervention de MJ.",
        "N'explique jamais que tu suis un style: fais-le, simplement.",
        f"Voix: {character.emoji or '🧙'} {character.name}",
        f"Tone: {voice.tone}",
        f"Style: {voice.style}",
        f"Verbosité: {voice.verbosity}",
    ]
    if character.archetype:
        lines.append(f"Archétype: {clean_line(character.archetype)}")
    if character.vibe:
        lines.append(f"Vibe: {clean_line(character.vibe)}")
    if character.motto:
        lines.append(f"Serment du MJ (à refléter sans citer): {clean_line(character.motto)}")
    return lines


def _adventure_block(adventure: AdventureContext) -> list[str]:
    if not (adventure.title or adventure.description or adventure.context_text):
        return []
    lines = [
        block_header("🌍 CONTEXTE GLOBAL D'AVENTURE"),
        "Ce contexte définit l'univers, l'intention et les règles implicites de l'aventure.",
        f"Nom de l'aventure: {clean_line(adventure.title) or '(non renseigné)'}",
    ]
    if adventure.description:
        lines.append(f"Description: {clean_line(adventure.description)}")
    lines.append(f"📜 Contexte:\n{adventure.context_text or '(non renseigné)'}")
    return lines


def _chapter_block(chapter: ChapterContext) -> list[str]:
    if not (chapter.title or chapter.context_text):
        return []
    return [
        block_header("📖 CONTEXTE DU CHAPITRE"),
        "Ce contexte décrit la situation actuelle et immédiate.",
        "Il affine le contexte global d'aventure pour les détails concrets.",
        f"Chapitre: {clean_line(chapter.title) or '(non renseigné)'}",
        f"📌 Situation actuelle:\n{chapter.context_text or '(non renseignée)'}",
    ]


def _quest_block(quest: QuestContext) -> list[str]:
    lines = [
        block_header("🎯 CONTEXTE DE QUÊTE"),
        f"Quête: {clean_line(quest.title)}",
        f"Difficulté: {difficulty_label(quest.difficulty)}",
    ]
    if quest.room_code:
        lines.append(f"Pièce: {quest.room_code}")
    if quest.description:
        lines.append(f"Description: {clean_line(quest.description)}")
    if quest.mission_md:
        lines.append(f"Mission:\n{quest.mission_md[:900]}")
    return lines


def build_context_prompt(
    *,
    player: PlayerContext | None = None,
    character: CharacterContext | None = None,
    adventure: AdventureContext | None = None,
    chapter: ChapterContext | None = None,
    quest: QuestContext | None = None,
) -> str | None:
    """Assemble the context blocks, global before local.

    When both an adventure and a chapter are present the precedence rule is
    appended after them.
    """
    blocks: list[list[str]] = []
    if player is not None:
        blocks.append(_player_block(player))
    if character is not None:
        blocks.append(_character_block(character))
    if adventure is not None:
        blocks.append(_adventure_block(adventure))
    if chapter is not None:
        blocks.append(_chapter_block(chapter))
    if adventure is not None and chapter is not None:
        blocks.append([CONTEXT_PRECEDENCE])
    if quest is not None:
        blocks.append(_quest_block(quest))
    text = "\n\n".join("\n".join(block) for block in blocks if block).strip()
    return text or None
