"""Plant inventory drafts (``plants.v1``) prefilled from a photo."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from gm.context import context_snapshot, load_player_context
from gm.errors import GenerationError, require_user, require_value, safe_trim
from gm.pipeline import GenerationScope, PromptSpec, run_generation
from gm.prompts import join_sections, resolve_voice
from llm.client import OpenAIClient, parse_json_object
from services.sessions import get_active_session

PLANTS_SCHEMA_VERSION = "plants.v1"

PLANTS_FIELD_KEYS_V1 = (
    "name",
    "common_name",
    "species",
    "location",
    "light",
    "watering",
    "health",
    "notes",
)

DEFAULT_TITLE = "Plante"
DEFAULT_DESCRIPTION = "Plante observée. Description à compléter."

PlantFieldType = Literal["string", "number", "boolean", "enum", "date", "text"]


def _field_schema(value_schema: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "required": ["type", "value"],
        "additionalProperties": False,
        "properties": {"type": {"type": "string"}, "value": value_schema},
    }


OPENAI_PLANT_PREFILL_SCHEMA_V1: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "schema_version": {"type": "string", "enum": [PLANTS_SCHEMA_VERSION]},
        "title": {"type": "string"},
        "ai_description": {"type": "string"},
        "data": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "name": _field_schema({"type": ["string", "null"], "maxLength": 80}),
                "common_name": _field_schema({"type": ["string", "null"], "maxLength": 120}),
                "species": _field_schema({"type": ["string", "null"], "maxLength": 160}),
                "location": _field_schema({"type": ["string", "null"], "maxLength": 140}),
                "light": _field_schema(
                    {"type": ["string", "null"], "enum": ["low", "medium", "high", None]}
                ),
                "watering": _field_schema(
                    {"type": ["string", "null"], "enum": ["low", "medium", "high", None]}
                ),
                "health": _field_schema(
                    {"type": ["string", "null"], "enum": ["poor", "ok", "good", None]}
                ),
                "notes": _field_schema({"type": ["string", "null"], "maxLength": 700}),
            },
            "required": list(PLANTS_FIELD_KEYS_V1),
        },
    },
    "required": ["schema_version", "title", "ai_description", "data"],
}


class PlantFieldValue(BaseModel):
    type: PlantFieldType
    value: Any = None


class PlantDataV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: PlantFieldValue
    common_name: PlantFieldValue
    species: PlantFieldValue
    location: PlantFieldValue
    light: PlantFieldValue
    watering: PlantFieldValue
    health: PlantFieldValue
    notes: PlantFieldValue


class PlantDraftV1(BaseModel):
    schema_version: Literal["plants.v1"]
    title: str = Field(min_length=1, max_length=80)
    ai_description: str = Field(min_length=1, max_length=1200)
    data: PlantDataV1


def guess_field_type(key: str) -> PlantFieldType:
    if key in {"light", "watering", "health"}:
        return "enum"
    if key == "notes":
        return "text"
    return "string"


def coerce_plant_prefill_to_draft_v1(raw: Any) -> dict[str, Any]:
    """Normalize model output into the ``{type, value}`` draft shape.

    Accepts typed fields or bare values, never raises, and returns its input
    unchanged when that input is already normalized.
    """
    raw = raw if isinstance(raw, dict) else {}
    raw_data = raw.get("data") if isinstance(raw.get("data"), dict) else {}

    data: dict[str, Any] = {}
    for key in PLANTS_FIELD_KEYS_V1:
        value = raw_data.get(key)
        if isinstance(value, dict) and "type" in value and "value" in value:
            data[key] = value
        else:
            data[key] = {"type": guess_field_type(key), "value": value}

    title = raw.get("title") if isinstance(raw.get("title"), str) else ""
    if not title:
        name = data["name"].get("value")
        common_name = data["common_name"].get("value")
        title = safe_trim(name) or safe_trim(common_name) or DEFAULT_TITLE

    description = raw.get("ai_description") if isinstance(raw.get("ai_description"), str) else ""

    return {
        "schema_version": PLANTS_SCHEMA_VERSION,
        "title": title,
        "ai_description": description or DEFAULT_DESCRIPTION,
        "data": data,
    }


def validate_plant_draft_v1(raw: Any) -> tuple[bool, PlantDraftV1 | None, list[str]]:
    try:
        draft = PlantDraftV1.model_validate(raw)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        return False, None, errors
    return True, draft, []


def parse_plant_draft(text: str | None) -> PlantDraftV1:
    draft_raw = coerce_plant_prefill_to_draft_v1(parse_json_object(text))
    ok, draft, errors = validate_plant_draft_v1(draft_raw)
    if not ok or draft is None:
        raise GenerationError(f"Invalid PlantDraftV1: {' | '.join(errors) or 'unknown'}")
    return draft


def _snippet(value: str | None, limit: int = 140) -> str | None:
    text = safe_trim(value)
    if not text:
        return None
    return f"{text[:limit]}…" if len(text) > limit else text


def generate_plant_prefill_from_photo(
    db: Session,
    user_id: str | None,
    *,
    photo_id: str | None,
    photo_signed_url: str | None,
    photo_caption: str | None = None,
    client: OpenAIClient | None = None,
) -> dict[str, Any]:
    user_id = require_user(user_id)
    photo_id = require_value(photo_id, "photo_id")
    photo_signed_url = require_value(photo_signed_url, "photo_signed_url")

    player = load_player_context(db, user_id)
    character = player.character
    voice = resolve_voice(character, style="clair")
    session = get_active_session(db, user_id)

    system_text = join_sections(
        [
            "Tu es le Maître du Jeu de Renaissance, mais ici tu joues le rôle "
            "d'un \"Scribe d'Inventaire\".",
            "But: analyser une photo de plante et remplir un brouillon d'inventaire structuré.",
            "Règles:",
            "- Ne JAMAIS inventer de détails non visibles. Utilise \"inconnu\" ou null si nécessaire.",
            "- Utilise un ton utile et sobre, pas de poésie excessive.",
            "- title: court (1 à 4 mots).",
            "- ai_description: 2 à 5 phrases max, factuelles, prudentes (\"semble\", \"on dirait\").",
            (
                f"Voix: {character.emoji or '🧙'} {character.name}. "
                f"Tone={voice.tone}, style={voice.style}, verbosity={voice.verbosity}."
                if character
                else None
            ),
            (
                f"Le joueur s'appelle \"{player.display_name}\". "
                "N'utilise son nom que si utile (0-1 fois)."
                if player.display_name
                else None
            ),
            "Tu dois respecter STRICTEMENT le schéma JSON demandé.",
            f'schema_version = "{PLANTS_SCHEMA_VERSION}".',
            'Champs (data.*.type): "string" | "text" | "enum" | "number" | "boolean" | "date".',
            "Pour value, mets une string courte si tu n'es pas sûr.",
        ]
    )
    context = {
        "photo": {"id": photo_id, "caption": safe_trim(photo_caption) or None},
        "inventory": {"schema_version": PLANTS_SCHEMA_VERSION, "kind": "plants"},
    }
    user_text = (
        f"Contexte:\n{json.dumps(context, ensure_ascii=False, indent=2)}\n\n"
        "Analyse la photo et génère un PlantDraftV1:\n"
        "- schema_version\n- title\n- ai_description\n"
        "- data (name, common_name, species, location, light, watering, health, notes)\n"
    )

    client = client or OpenAIClient()
    result = run_generation(
        db,
        client,
        PromptSpec(
            generation_type="inventory_plants_prefill",
            source="generate_plant_prefill_from_photo",
            system_text=system_text,
            user_text=user_text,
            schema_name="inventory_plants_prefill_v1",
            schema=OPENAI_PLANT_PREFILL_SCHEMA_V1,
            image_url=photo_signed_url,
        ),
        GenerationScope(session_id=session.id if session else None, user_id=user_id),
        parse_plant_draft,
        context=context_snapshot(photo=context["photo"], player=player),
        tags=["inventory", "plants", "prefill"],
        metadata={
            "photo_id": photo_id,
            "caption_snippet": _snippet(photo_caption),
            "tone": voice.tone,
            "style": voice.style,
            "verbosity": voice.verbosity,
        },
    )
    return {
        "draft": result.value.model_dump(),
        "meta": {
            "model": result.model,
            "provider": client.provider,
            "usage": result.response.get("usage"),
        },
    }
