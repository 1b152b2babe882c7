import pytest
import requests

from services.auth import SupabaseAuth, bearer_token
from services.storage import StorageError, SupabaseStorage


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload or {}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_bearer_token() -> None:
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer  abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_auth_resolves_user_id(monkeypatch) -> None:
    calls = {}

    def fake_get(url, headers, timeout):
        calls.update(url=url, headers=headers)
        return FakeResponse({"id": "user-1"})

    monkeypatch.setattr("services.auth.requests.get", fake_get)
    auth = SupabaseAuth(url="https://sb.test/", anon_key="anon")

    assert auth.get_user_id("token") == "user-1"
    assert calls["url"] == "https://sb.test/auth/v1/user"
    assert calls["headers"]["Authorization"] == "Bearer token"
    assert calls["headers"]["apikey"] == "anon"


def test_auth_returns_none_on_rejection(monkeypatch) -> None:
    monkeypatch.setattr(
        "services.auth.requests.get", lambda *args, **kwargs: FakeResponse(status_code=401)
    )
    auth = SupabaseAuth(url="https://sb.test", anon_key="anon")
    assert auth.get_user_id("token") is None
    assert auth.get_user_id(None) is None


def test_auth_returns_none_on_transport_error(monkeypatch) -> None:
    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr("services.auth.requests.get", fake_get)
    assert SupabaseAuth(url="https://sb.test").get_user_id("token") is None


class HtmlResponse(FakeResponse):
    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


def test_auth_returns_none_on_non_json_body(monkeypatch) -> None:
    monkeypatch.setattr("services.auth.requests.get", lambda *args, **kwargs: HtmlResponse())
    assert SupabaseAuth(url="https://sb.test").get_user_id("token") is None

    monkeypatch.setattr(
        "services.auth.requests.get", lambda *args, **kwargs: FakeResponse(["not", "a", "user"])
    )
    assert SupabaseAuth(url="https://sb.test").get_user_id("token") is None


def test_storage_signed_url(monkeypatch) -> None:
    calls = {}

    def fake_request(method, url, timeout, **kwargs):
        calls.update(method=method, url=url, json=kwargs.get("json"))
        return FakeResponse({"signedURL": "/object/sign/photos/a.jpg?token=t"})

    monkeypatch.setattr("services.storage.requests.request", fake_request)
    storage = SupabaseStorage(url="https://sb.test", service_key="service")

    url = storage.create_signed_url("a.jpg")

    assert url == "https://sb.test/storage/v1/object/sign/photos/a.jpg?token=t"
    assert calls["method"] == "POST"
    assert calls["url"] == "https://sb.test/storage/v1/object/sign/photos/a.jpg"
    assert calls["json"] == {"expiresIn": 1800}


def test_storage_upload_sends_upsert_header(monkeypatch) -> None:
    calls = {}

    def fake_request(method, url, timeout, **kwargs):
        calls.update(method=method, url=url, headers=kwargs["headers"], data=kwargs["data"])
        return FakeResponse()

    monkeypatch.setattr("services.storage.requests.request", fake_request)
    SupabaseStorage(url="https://sb.test", service_key="service").upload(
        "s/quests/q/final/p.png", b"png", "image/png"
    )

    assert calls["url"] == "https://sb.test/storage/v1/object/photos/s/quests/q/final/p.png"
    assert calls["headers"]["x-upsert"] == "true"
    assert calls["headers"]["Content-Type"] == "image/png"
    assert calls["data"] == b"png"


def test_storage_wraps_failures(monkeypatch) -> None:
    monkeypatch.setattr(
        "services.storage.requests.request",
        lambda *args, **kwargs: FakeResponse(status_code=500),
    )
    storage = SupabaseStorage(url="https://sb.test", service_key="service")
    with pytest.raises(StorageError):
        storage.remove(["a.jpg"])

    monkeypatch.delenv("SUPABASE_URL", raising=False)
    with pytest.raises(StorageError, match="SUPABASE_URL"):
        SupabaseStorage(url="", service_key="x").upload("a", b"", None)


def test_storage_signed_url_rejects_non_json_body(monkeypatch) -> None:
    monkeypatch.setattr("services.storage.requests.request", lambda *args, **kwargs: HtmlResponse())
    storage = SupabaseStorage(url="https://sb.test", service_key="service")
    with pytest.raises(StorageError, match="invalid signed URL"):
        storage.create_signed_url("a.jpg")
