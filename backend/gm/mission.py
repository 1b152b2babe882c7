from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from gm.context import (
    QuestScope,
    context_snapshot,
    load_chapter_quest_scope,
    load_player_context,
    load_quest_context,
    require_quest_owner,
)
from gm.errors import GenerationError, NotFoundError, require_user, require_value
from gm.pipeline import GenerationScope, JournalSpec, PromptSpec, run_generation
from gm.prompts import (
    NO_META,
    STRICT_JSON,
    context_lines,
    difficulty_label,
    join_sections,
    player_name_line,
    resolve_voice,
    voice_line,
)
from llm.client import OpenAIClient
from llm.schemas import MissionOrderJson, mission_order_schema, parse_mission_order
from models import AdventureQuest, ChapterQuest

UNKNOWN_ESTIMATE = "Temps estimé: ?"


@dataclass(frozen=True)
class MissionRules:
    max_intro_lines: int
    steps_min: int
    steps_max: int


def mission_rules(verbosity: str | None) -> MissionRules:
    key = (verbosity or "").strip().lower()
    if key == "short":
        return MissionRules(2, 3, 6)
    if key == "rich":
        return MissionRules(4, 5, 9)
    return MissionRules(3, 3, 9)


def render_mission_md(mission: MissionOrderJson) -> str:
    return "\n".join(
        [
            f"⏱️ {mission.estimated_time}",
            f"💪 {mission.difficulty_label}",
            "",
            mission.intro,
            "",
            "**🎯 Objectifs**",
            "",
            mission.objectives_paragraph,
            "",
            "**🪜 Étapes**",
            "",
            *(f"- {step}" for step in mission.steps),
            "",
            "**✅ Réussite**",
            "",
            mission.success_paragraph,
        ]
    )


def _owned_chapter_quest(
    db: Session, user_id: str, chapter_quest_id: str
) -> tuple[QuestScope, ChapterQuest]:
    scope = require_quest_owner(db, user_id, load_chapter_quest_scope(db, chapter_quest_id))
    if not scope.exists:
        raise NotFoundError("Chapter quest not found")
    if not scope.session_id:
        raise GenerationError("Missing session_id on chapter_quests")
    return scope, db.get(ChapterQuest, chapter_quest_id)


def _mission_payload(row: ChapterQuest, *, model: str | None, cached: bool) -> dict[str, Any]:
    return {
        "chapter_quest_id": row.id,
        "session_id": row.session_id,
        "mission_md": row.mission_md,
        "mission_json": row.mission_json,
        "model": model,
        "cached": cached,
    }


def get_quest_mission(db: Session, user_id: str | None, chapter_quest_id: str | None) -> dict | None:
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")
    _, row = _owned_chapter_quest(db, user_id, chapter_quest_id)
    if not row.mission_md:
        return None
    return _mission_payload(row, model=None, cached=True)


def generate_quest_mission(
    db: Session,
    user_id: str | None,
    chapter_quest_id: str | None,
    *,
    force: bool = False,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    """Write the mission order of a chapter quest into ``chapter_quests.mission_md``.

    An existing mission is returned as is unless ``force`` is set.
    """
    user_id = require_user(user_id)
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")

    scope, row = _owned_chapter_quest(db, user_id, chapter_quest_id)
    quest = load_quest_context(db, chapter_quest_id)
    if not row.adventure_quest_id or db.get(AdventureQuest, row.adventure_quest_id) is None:
        raise NotFoundError("Quest not found")
    if row.mission_md and not force:
        return _mission_payload(row, model=None, cached=True)

    player = load_player_context(db, user_id)
    character = player.character
    voice = resolve_voice(character)
    rules = mission_rules(voice.verbosity)
    difficulty = difficulty_label(quest.difficulty)

    system_text = join_sections(
        [
            "Tu es le Maître du Jeu de Renaissance.",
            "Tu écris un ordre de mission RPG, concret, actionnable.",
            "Le rendu FINAL sera assemblé côté code.",
            "Emojis sobres.",
            voice_line(character, voice),
            player_name_line(player.display_name),
            *context_lines(scope.adventure_context_text, scope.chapter_context_text),
            (
                f"Serment (à refléter sans citer): {character.motto}"
                if character and character.motto
                else None
            ),
            f"Contraintes: intro ≤ {rules.max_intro_lines} lignes. "
            f"Étapes {rules.steps_min}-{rules.steps_max}.",
            NO_META,
            STRICT_JSON,
        ]
    )
    quest_context = {
        "title": quest.title,
        "description": quest.description or "",
        "room_code": quest.room_code or "",
        "difficulty": quest.difficulty if quest.difficulty is not None else 2,
        "status": quest.status,
        "adventure_context": scope.adventure_context_text or "",
        "chapter_context": scope.chapter_context_text or "",
    }
    user_text = (
        f"Contexte quête:\n{json.dumps(quest_context, ensure_ascii=False, indent=2)}\n\n"
        "Génère:\n"
        "- intro\n- objectives_paragraph\n- steps\n- success_paragraph\n- title (optionnel)\n"
    )

    def parse(text: str | None) -> MissionOrderJson:
        mission = parse_mission_order(text)
        return mission.model_copy(
            update={
                "estimated_time": mission.estimated_time or UNKNOWN_ESTIMATE,
                "difficulty_label": difficulty,
            }
        )

    def persist(mission: MissionOrderJson) -> str:
        row.mission_md = render_mission_md(mission)
        row.mission_json = mission.model_dump()
        db.flush()
        return row.mission_md

    def journal(mission: MissionOrderJson) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title="🧠 Mission générée",
            content=mission.title or quest.title,
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
            meta={"chapter_quest_id": chapter_quest_id, "force": force},
        )

    def journal_on_error(exc: Exception) -> JournalSpec:
        return JournalSpec(
            kind="note",
            title="🧠 Mission (erreur IA)",
            content=f"Quête: {quest.title}\nErreur: {exc}",
            chapter_id=scope.chapter_id,
            adventure_quest_id=scope.adventure_quest_id,
            meta={"chapter_quest_id": chapter_quest_id, "force": force},
        )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="quest_mission",
            source="generate_quest_mission",
            system_text=system_text,
            user_text=user_text,
            schema_name="mission_order_v2",
            schema=mission_order_schema(rules.steps_min, rules.steps_max),
        ),
        GenerationScope(
            session_id=scope.session_id,
            user_id=user_id,
            chapter_quest_id=chapter_quest_id,
            chapter_id=scope.chapter_id,
            adventure_id=scope.adventure_id,
        ),
        parse,
        context=context_snapshot(player=player, quest=quest_context),
        tags=["quest", "mission"],
        metadata={"force": force, "verbosity": voice.verbosity},
        persist=persist,
        journal=journal,
        journal_on_error=journal_on_error,
    )
    return _mission_payload(row, model=result.model, cached=False)
