from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from llm.client import parse_json_object

QUEST_MESSAGE_JSON_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "title": {"type": "string"},
        "message": {"type": "string"},
    },
    "required": ["title", "message"],
}


class QuestMessageJson(BaseModel):
    """Title + message pair returned by congrats and encouragement prompts."""

    model_config = ConfigDict(extra="forbid", strict=True, str_strip_whitespace=True)

    title: str = Field(min_length=1)
    message: str = Field(min_length=1)


def parse_quest_message(text: str | None) -> QuestMessageJson:
    return QuestMessageJson.model_validate(parse_json_object(text))


QUEST_PHOTO_MESSAGE_JSON_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "message": {"type": "string"},
    },
    "required": ["title", "description", "message"],
}


class PhotoQuestMessageJson(QuestMessageJson):
    """Quest message plus a cautious description of the proof photo."""

    description: str = Field(min_length=1)


def parse_photo_quest_message(text: str | None) -> PhotoQuestMessageJson:
    return PhotoQuestMessageJson.model_validate(parse_json_object(text))


def mission_order_schema(steps_min: int, steps_max: int) -> dict:
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "title": {"type": "string"},
            "estimated_time": {"type": "string"},
            "difficulty_label": {"type": "string"},
            "intro": {"type": "string"},
            "objectives_paragraph": {"type": "string"},
            "steps": {
                "type": "array",
                "items": {"type": "string"},
                "minItems": steps_min,
                "maxItems": steps_max,
            },
            "success_paragraph": {"type": "string"},
        },
        "required": [
            "title",
            "estimated_time",
            "difficulty_label",
            "intro",
            "objectives_paragraph",
            "steps",
            "success_paragraph",
        ],
    }


class MissionOrderJson(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, str_strip_whitespace=True)

    title: str = ""
    estimated_time: str = ""
    difficulty_label: str = ""
    intro: str = Field(min_length=1)
    objectives_paragraph: str = Field(min_length=1)
    steps: list[str] = Field(min_length=1)
    success_paragraph: str = Field(min_length=1)


def parse_mission_order(text: str | None) -> MissionOrderJson:
    return MissionOrderJson.model_validate(parse_json_object(text))
