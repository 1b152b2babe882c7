import json

import pytest

from gm.encouragement import generate_encouragement_quest_message
from gm.errors import MissingInputError, NotAuthenticated, NotFoundError
from llm.client import LLMClientError
from models import AiGeneration, ChapterQuest, JournalEntry, QuestMessage, QuestThread

ENCOURAGEMENT = json.dumps({"title": "Tiens bon", "message": "Une assiette à la fois.\nCommence par la plus proche."})


def test_requires_user(db, world, llm) -> None:
    client = llm(output=ENCOURAGEMENT)
    with pytest.raises(NotAuthenticated):
        generate_encouragement_quest_message(db, "", world.chapter_quest_id, client=client)
    assert client.payloads == []


def test_requires_chapter_quest_id(db, world, llm) -> None:
    client = llm(output=ENCOURAGEMENT)
    with pytest.raises(MissingInputError, match="Missing chapter_quest_id"):
        generate_encouragement_quest_message(db, world.user_id, None, client=client)
    assert client.payloads == []


def test_unknown_quest_still_generates_without_writing(db, world, llm) -> None:
    client = llm(output=ENCOURAGEMENT)

    result = generate_encouragement_quest_message(db, world.user_id, "missing", client=client)
    db.commit()

    assert result["encouragement_json"]["title"] == "Tiens bon"
    assert result["session_id"] is None
    assert result["thread_id"] is None
    assert result["message_id"] is None
    assert len(client.payloads) == 1
    assert "Quête" in client.payloads[0]["input"][0]["content"][0]["text"]
    assert db.query(QuestMessage).count() == 0
    assert db.query(AiGeneration).count() == 0
    assert db.query(JournalEntry).count() == 0


def test_quest_without_session_still_generates(db, world, llm) -> None:
    orphan = ChapterQuest(session_id=None, chapter_id=world.chapter_id)
    db.add(orphan)
    db.commit()
    client = llm(output=ENCOURAGEMENT)

    result = generate_encouragement_quest_message(db, world.user_id, orphan.id, client=client)
    db.commit()

    assert result["message_id"] is None
    assert "Focus on kitchen" in client.payloads[0]["input"][0]["content"][0]["text"]
    assert db.query(QuestThread).count() == 0
    assert db.query(AiGeneration).count() == 0


def test_foreign_quest_is_not_found(db, world, llm) -> None:
    client = llm(output=ENCOURAGEMENT)

    with pytest.raises(NotFoundError, match="Chapter quest not found"):
        generate_encouragement_quest_message(db, "intruder-user", world.chapter_quest_id, client=client)
    db.commit()

    assert client.payloads == []
    assert db.query(QuestMessage).count() == 0
    assert db.query(JournalEntry).count() == 0


def test_success_posts_message_and_journal(db, world, llm) -> None:
    client = llm(output=ENCOURAGEMENT)

    result = generate_encouragement_quest_message(
        db, world.user_id, world.chapter_quest_id, client=client
    )
    db.commit()

    assert result["encouragement_json"] == json.loads(ENCOURAGEMENT)
    assert result["model"] == "gpt-test"
    message = db.get(QuestMessage, result["message_id"])
    assert message.kind == "encouragement"
    assert message.title == "Tiens bon"
    entry = db.query(JournalEntry).one()
    assert entry.title == "💪 Tiens bon"
    assert entry.adventure_id == world.adventure_id

    system_text = client.payloads[0]["input"][0]["content"][0]["text"]
    assert "Vider l'évier" in system_text
    assert "Louise" in system_text
    assert "2 à 4 lignes" in system_text
    assert system_text.index("General home reset") < system_text.index("Focus on kitchen")


def test_llm_failure_logs_error_and_writes_nothing_else(db, world, llm) -> None:
    client = llm(error=LLMClientError("OpenAI request failed: 500"))

    with pytest.raises(LLMClientError):
        generate_encouragement_quest_message(db, world.user_id, world.chapter_quest_id, client=client)
    db.commit()

    row = db.query(AiGeneration).one()
    assert row.status == "error"
    assert row.generation_type == "encouragement"
    assert db.query(QuestMessage).count() == 0
    assert db.query(JournalEntry).count() == 0
