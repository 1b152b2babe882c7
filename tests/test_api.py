import json

import requests
from fastapi.testclient import TestClient

from app.main import app
from conftest import USER_ID, StubLLMClient
from llm.client import OpenAIClient
from models import Adventure, AiGeneration, JournalEntry, QuestMessage

client = TestClient(app)

AUTH = {"Authorization": "Bearer good-token"}
INTRUDER = {"Authorization": "Bearer intruder-token"}
CONGRAT = json.dumps({"title": "Évier libéré", "message": "Bravo.\nEt maintenant, le plan de travail."})


class StubAuth:
    def get_user_id(self, access_token):
        return {"good-token": USER_ID, "intruder-token": "intruder-user"}.get(access_token)


class StubStorage:
    def upload(self, path, data, content_type):
        return None

    def remove(self, paths):
        return None

    def create_signed_url(self, path, expires_in=1800):
        return f"https://storage.test/{path}"


def _wire(monkeypatch, session_factory, llm_client=None):
    monkeypatch.setattr("app.main.SessionLocal", session_factory)
    monkeypatch.setattr("app.main.SupabaseAuth", StubAuth)
    monkeypatch.setattr("app.main.SupabaseStorage", StubStorage)
    llm_client = llm_client or StubLLMClient(output=CONGRAT)
    monkeypatch.setattr("app.main.OpenAIClient", lambda: llm_client)
    return llm_client


def test_health_ok(monkeypatch) -> None:
    monkeypatch.setattr("app.main.check_db_connection", lambda: None)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_reports_database_failure(monkeypatch) -> None:
    def broken():
        raise RuntimeError("connection refused")

    monkeypatch.setattr("app.main.check_db_connection", broken)
    response = client.get("/health")
    assert response.status_code == 503


def test_generation_without_token_is_401(monkeypatch, session_factory, world) -> None:
    llm_client = _wire(monkeypatch, session_factory)

    response = client.post("/api/ai/quest-congrat", json={"chapter_quest_id": world.chapter_quest_id})

    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"
    assert llm_client.payloads == []


def test_generation_with_missing_id_is_400(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post("/api/encouragement", json={}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing chapter_quest_id"


def test_unknown_adventure_is_404(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post("/api/ai/welcome-message", json={"adventure_id": "missing"}, headers=AUTH)

    assert response.status_code == 404
    assert response.json()["detail"] == "Adventure not found"


def test_quest_congrat_route(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post(
        "/api/ai/quest-congrat", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["congrat_json"]["title"] == "Évier libéré"
    with session_factory() as db:
        assert db.query(QuestMessage).count() == 1
        assert db.query(JournalEntry).one().title == "🏆 Évier libéré"


def test_congrats_route_returns_meta(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post(
        "/api/congrats",
        json={"chapter_quest_id": world.chapter_quest_id, "quest_title": "Vider l'évier"},
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json()["meta"]["character_emoji"] == "🦉"


def test_invalid_output_is_500_and_error_row_is_kept(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory, StubLLMClient(output="not json"))

    response = client.post(
        "/api/encouragement", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )

    assert response.status_code == 500
    with session_factory() as db:
        row = db.query(AiGeneration).one()
        assert row.status == "error"
        assert row.output_text == "not json"


def test_foreign_rows_are_404_and_untouched(monkeypatch, session_factory, world) -> None:
    llm_client = _wire(monkeypatch, session_factory)

    for path, body in (
        ("/api/ai/welcome-message", {"adventure_id": world.adventure_id}),
        ("/api/ai/quest-congrat", {"chapter_quest_id": world.chapter_quest_id}),
        ("/api/encouragement", {"chapter_quest_id": world.chapter_quest_id}),
        ("/api/congrats", {"chapter_quest_id": world.chapter_quest_id}),
    ):
        response = client.post(path, json=body, headers=INTRUDER)
        assert response.status_code == 404, path

    assert llm_client.payloads == []
    with session_factory() as db:
        assert db.get(Adventure, world.adventure_id).welcome_text is None
        assert db.query(QuestMessage).count() == 0
        assert db.query(JournalEntry).count() == 0


def test_encouragement_for_unknown_quest_is_soft(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post("/api/encouragement", json={"chapter_quest_id": "missing"}, headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["encouragement_json"]["title"] == "Évier libéré"
    assert body["message_id"] is None


class HtmlResponse:
    status_code = 200

    def raise_for_status(self):
        return None

    def json(self):
        raise requests.JSONDecodeError("Expecting value", "<html>Bad gateway</html>", 0)


def test_non_json_llm_body_is_500_and_error_row_is_kept(monkeypatch, session_factory, world) -> None:
    _wire(
        monkeypatch,
        session_factory,
        OpenAIClient(api_key="sk-test", base_url="http://llm.test/v1", model="gpt-test", timeout=5),
    )
    monkeypatch.setattr("llm.client.requests.post", lambda *args, **kwargs: HtmlResponse())

    response = client.post(
        "/api/encouragement", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )

    assert response.status_code == 500
    with session_factory() as db:
        row = db.query(AiGeneration).one()
        assert row.status == "error"
        assert row.error_code == "LLMClientError"
        assert row.response_json is None


def test_quest_photo_message_route(monkeypatch, session_factory, world) -> None:
    reply = {"title": "Preuve reçue", "description": "Il semble propre.", "message": "Bravo."}
    llm_client = _wire(monkeypatch, session_factory, StubLLMClient(output=json.dumps(reply)))

    response = client.post(
        "/api/ai/quest-photo-message",
        json={
            "chapter_quest_id": world.chapter_quest_id,
            "photo_category": "final",
            "photo_signed_url": "https://storage.test/p.jpg",
        },
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json()["mj_message"]["title"] == "Preuve reçue"
    assert llm_client.payloads[0]["input"][1]["content"][1]["image_url"] == "https://storage.test/p.jpg"
    with session_factory() as db:
        assert db.query(QuestMessage).one().kind == "photo"

    response = client.post(
        "/api/ai/quest-photo-message",
        json={"chapter_quest_id": world.chapter_quest_id},
        headers=AUTH,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing photo_signed_url"


def test_quest_mission_routes(monkeypatch, session_factory, world) -> None:
    mission = {
        "title": "Opération évier",
        "estimated_time": "15 min",
        "difficulty_label": "Standard",
        "intro": "La cuisine attend.",
        "objectives_paragraph": "Libérer l'évier.",
        "steps": ["Trier", "Laver", "Rincer"],
        "success_paragraph": "L'évier brille.",
    }
    llm_client = _wire(monkeypatch, session_factory, StubLLMClient(output=json.dumps(mission)))

    response = client.post(
        "/api/ai/quest-mission", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )
    assert response.status_code == 200
    assert response.json()["cached"] is True
    assert llm_client.payloads == []

    response = client.post(
        "/api/ai/quest-mission",
        json={"chapter_quest_id": world.chapter_quest_id, "force": True},
        headers=AUTH,
    )
    assert response.status_code == 200
    assert response.json()["mission"]["mission_md"].startswith("⏱️ 15 min")

    response = client.get(
        "/api/ai/quest-mission", params={"chapterQuestId": world.chapter_quest_id}, headers=AUTH
    )
    assert response.status_code == 200
    assert response.json()["mission"]["mission_json"]["title"] == "Opération évier"

    response = client.get(
        "/api/ai/quest-mission", params={"chapterQuestId": world.chapter_quest_id}, headers=INTRUDER
    )
    assert response.status_code == 404


def test_plant_prefill_route(monkeypatch, session_factory, world) -> None:
    draft = {"title": "Ficus", "ai_description": "Un ficus.", "data": {"name": "Ficus"}}
    _wire(monkeypatch, session_factory, StubLLMClient(output=json.dumps(draft)))

    response = client.post(
        "/api/inventory/plants/prefill",
        json={"photo_id": "p-1", "photo_signed_url": "https://img.test/p.jpg"},
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["draft"]["schema_version"] == "plants.v1"
    assert body["draft"]["data"]["light"] == {"type": "enum", "value": None}
    assert body["meta"]["provider"] == "openai"


def test_photo_upload_list_and_delete(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post(
        "/api/photos",
        data={"chapter_quest_id": world.chapter_quest_id, "category": "final", "is_cover": "true"},
        files={"file": ("after.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=AUTH,
    )
    assert response.status_code == 200
    photo = response.json()["photo"]
    assert photo["is_cover"] is True
    assert photo["path"].endswith(".jpg")

    response = client.get(
        "/api/photos", params={"chapterQuestId": world.chapter_quest_id}, headers=AUTH
    )
    assert response.status_code == 200
    assert [row["id"] for row in response.json()["rows"]] == [photo["id"]]

    response = client.delete("/api/photos", params={"id": photo["id"]}, headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    response = client.delete("/api/photos", params={"id": photo["id"]}, headers=AUTH)
    assert response.status_code == 404


def test_photo_upload_rejects_non_images(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.post(
        "/api/photos",
        data={"chapter_quest_id": world.chapter_quest_id},
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "File must be an image"


def test_journal_route(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)
    client.post(
        "/api/ai/quest-congrat", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )

    response = client.get("/api/journal", params={"limit": "10"}, headers=AUTH)

    assert response.status_code == 200
    rows = response.json()["rows"]
    assert len(rows) == 1
    assert rows[0]["kind"] == "note"


def test_stats_route(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)

    response = client.get("/api/me/stats", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["session"]["id"] == world.session_id
    assert body["progression"]["quests"]["total"] == 1


def test_stats_route_without_session(monkeypatch, session_factory) -> None:
    _wire(monkeypatch, session_factory)

    response = client.get("/api/me/stats", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["detail"] == "No session found"


def test_admin_ai_generations(monkeypatch, session_factory, world) -> None:
    _wire(monkeypatch, session_factory)
    client.post(
        "/api/ai/quest-congrat", json={"chapter_quest_id": world.chapter_quest_id}, headers=AUTH
    )

    assert client.get("/api/admin/ai-generations").status_code == 401

    response = client.get(
        "/api/admin/ai-generations", params={"type": "congrat", "limit": "999"}, headers=AUTH
    )
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["limit"] == 200
    assert body["offset"] == 0
    summary = body["rows"][0]
    assert "request_json" not in summary

    response = client.get("/api/admin/ai-generations", params={"id": summary["id"]}, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["row"]["parsed_json"]["title"] == "Évier libéré"

    response = client.get("/api/admin/ai-generations", params={"id": "missing"}, headers=AUTH)
    assert response.status_code == 404
