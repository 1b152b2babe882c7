import logging
import os
from typing import Any

from fastapi import FastAPI, File, Form, Header, HTTPException, UploadFile
from pydantic import BaseModel

from audit.ai_generations import (
    LIST_LIMIT_MAX,
    list_ai_generations,
    serialize_generation,
    summarize_generation,
)
from audit.journal import list_journal_entries, serialize_journal_entry
from db import SessionLocal, check_db_connection
from gm.congrats import generate_congrats_for_quest, generate_quest_congrat
from gm.encouragement import generate_encouragement_quest_message
from gm.errors import (
    GenerationError,
    InvalidInputError,
    NotAuthenticated,
    NotFoundError,
    require_user,
    safe_trim,
)
from gm.mission import generate_quest_mission, get_quest_mission
from gm.photo_message import generate_photo_quest_message
from gm.welcome import generate_welcome_message
from inventory.plants import generate_plant_prefill_from_photo
from llm.client import LLMClientError, OpenAIClient
from models import AiGeneration
from services.auth import SupabaseAuth, bearer_token
from services.photos import delete_photo, list_quest_photos, upload_quest_photo
from services.sessions import get_active_or_latest_session, get_active_session
from services.storage import StorageError, SupabaseStorage
from stats.player import compute_player_stats

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

HANDLED_ERRORS = (
    NotAuthenticated,
    InvalidInputError,
    NotFoundError,
    GenerationError,
    LLMClientError,
    StorageError,
)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotAuthenticated):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    logger.error("request.failed error=%s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def _current_user_id(authorization: str | None) -> str | None:
    return SupabaseAuth().get_user_id(bearer_token(authorization))


def _require_user(authorization: str | None) -> str:
    try:
        return require_user(_current_user_id(authorization))
    except NotAuthenticated as exc:
        raise _http_error(exc) from exc


def _parse_int(value: str | None, fallback: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed >= 0 else fallback


def _parse_bool(value: str | None) -> bool:
    return str(value or "").strip().lower() in {"true", "1", "yes", "on"}


app = FastAPI(
    title="renaissance API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


class CongratsRequest(BaseModel):
    chapter_quest_id: str | None = None
    quest_title: str | None = None
    room_code: str | None = None
    difficulty: int | None = None
    mission_md: str | None = None


class ChapterQuestRequest(BaseModel):
    chapter_quest_id: str | None = None


class WelcomeMessageRequest(BaseModel):
    adventure_id: str | None = None


class QuestPhotoMessageRequest(BaseModel):
    chapter_quest_id: str | None = None
    photo_id: str | None = None
    photo_category: str | None = None
    photo_caption: str | None = None
    photo_signed_url: str | None = None


class QuestMissionRequest(BaseModel):
    chapter_quest_id: str | None = None
    force: bool = False


class PlantPrefillRequest(BaseModel):
    photo_id: str | None = None
    photo_signed_url: str | None = None
    photo_caption: str | None = None


@app.post("/api/congrats")
def congrats(payload: CongratsRequest, authorization: str | None = Header(default=None)) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_congrats_for_quest(
                db,
                user_id,
                chapter_quest_id=payload.chapter_quest_id,
                quest_title=payload.quest_title,
                room_code=payload.room_code,
                difficulty=payload.difficulty,
                mission_md=payload.mission_md,
                client=OpenAIClient(),
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return result


@app.post("/api/ai/quest-congrat")
def quest_congrat(
    payload: ChapterQuestRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_quest_congrat(
                db, user_id, payload.chapter_quest_id, client=OpenAIClient()
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return {"ok": True, **result}


@app.post("/api/encouragement")
def encouragement(
    payload: ChapterQuestRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_encouragement_quest_message(
                db, user_id, payload.chapter_quest_id, client=OpenAIClient()
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return {"ok": True, **result}


@app.post("/api/ai/welcome-message")
def welcome_message(
    payload: WelcomeMessageRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_welcome_message(
                db, user_id, payload.adventure_id, client=OpenAIClient()
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return {"ok": True, **result}


@app.post("/api/ai/quest-photo-message")
def quest_photo_message(
    payload: QuestPhotoMessageRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_photo_quest_message(
                db,
                user_id,
                chapter_quest_id=payload.chapter_quest_id,
                photo_signed_url=payload.photo_signed_url,
                photo_id=payload.photo_id,
                photo_category=payload.photo_category,
                photo_caption=payload.photo_caption,
                client=OpenAIClient(),
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return {"ok": True, **result}


@app.get("/api/ai/quest-mission")
def read_quest_mission(
    chapterQuestId: str | None = None, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _require_user(authorization)
    with SessionLocal() as db:
        try:
            mission = get_quest_mission(db, user_id, chapterQuestId)
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return {"mission": mission}


@app.post("/api/ai/quest-mission")
def quest_mission(
    payload: QuestMissionRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            mission = generate_quest_mission(
                db, user_id, payload.chapter_quest_id, force=payload.force, client=OpenAIClient()
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return {"mission": mission, "cached": mission["cached"]}


@app.post("/api/inventory/plants/prefill")
def plant_prefill(
    payload: PlantPrefillRequest, authorization: str | None = Header(default=None)
) -> dict:
    user_id = _current_user_id(authorization)
    with SessionLocal() as db:
        try:
            result = generate_plant_prefill_from_photo(
                db,
                user_id,
                photo_id=payload.photo_id,
                photo_signed_url=payload.photo_signed_url,
                photo_caption=payload.photo_caption,
                client=OpenAIClient(),
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return result


@app.get("/api/photos")
def list_photos(
    chapterQuestId: str | None = None,
    limit: str | None = None,
    authorization: str | None = Header(default=None),
) -> dict:
    user_id = _require_user(authorization)
    with SessionLocal() as db:
        session = get_active_session(db, user_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No active session")
        try:
            rows = list_quest_photos(
                db,
                SupabaseStorage(),
                session_id=session.id,
                chapter_quest_id=chapterQuestId,
                limit=_parse_int(limit, 200),
            )
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return {"rows": rows}


@app.post("/api/photos")
def upload_photo(
    file: UploadFile | None = File(default=None),
    chapter_quest_id: str = Form(default=""),
    category: str = Form(default="other"),
    caption: str | None = Form(default=None),
    sort: str | None = Form(default=None),
    is_cover: str | None = Form(default=None),
    width: str | None = Form(default=None),
    height: str | None = Form(default=None),
    authorization: str | None = Header(default=None),
) -> dict:
    user_id = _require_user(authorization)
    if file is None:
        raise HTTPException(status_code=400, detail="Missing file")
    with SessionLocal() as db:
        session = get_active_session(db, user_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No active session")
        try:
            result = upload_quest_photo(
                db,
                SupabaseStorage(),
                user_id=user_id,
                session_id=session.id,
                chapter_quest_id=chapter_quest_id,
                file_name=file.filename,
                content_type=file.content_type,
                data=file.file.read(),
                category=safe_trim(category) or "other",
                caption=caption,
                sort=_parse_int(sort, 0),
                is_cover=_parse_bool(is_cover),
                width=_parse_int(width, 0) if width is not None else None,
                height=_parse_int(height, 0) if height is not None else None,
            )
        except HANDLED_ERRORS as exc:
            db.commit()
            raise _http_error(exc) from exc
        db.commit()
        return result


@app.delete("/api/photos")
def remove_photo(id: str | None = None, authorization: str | None = Header(default=None)) -> dict:
    user_id = _require_user(authorization)
    with SessionLocal() as db:
        session = get_active_session(db, user_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No active session")
        try:
            delete_photo(db, SupabaseStorage(), session_id=session.id, photo_id=id)
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        db.commit()
        return {"ok": True}


@app.get("/api/me/stats")
def my_stats(authorization: str | None = Header(default=None)) -> dict:
    user_id = _require_user(authorization)
    with SessionLocal() as db:
        session = get_active_or_latest_session(db, user_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No session found")
        return compute_player_stats(db, user_id, session)


@app.get("/api/journal")
def journal(
    limit: str | None = None,
    offset: str | None = None,
    authorization: str | None = Header(default=None),
) -> dict:
    user_id = _require_user(authorization)
    with SessionLocal() as db:
        session = get_active_session(db, user_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No active session")
        entries = list_journal_entries(
            db,
            session.id,
            limit=_parse_int(limit, 50),
            offset=_parse_int(offset, 0),
        )
        return {"rows": [serialize_journal_entry(entry) for entry in entries]}


@app.get("/api/admin/ai-generations")
def admin_ai_generations(
    id: str | None = None,
    q: str | None = None,
    type: str | None = None,
    status: str | None = None,
    model: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    _require_user(authorization)
    with SessionLocal() as db:
        row_id = safe_trim(id)
        if row_id:
            row = db.get(AiGeneration, row_id)
            if row is None:
                raise HTTPException(status_code=404, detail="Not found")
            return {"row": serialize_generation(row)}

        limit_value = min(_parse_int(limit, 25), LIST_LIMIT_MAX)
        offset_value = _parse_int(offset, 0)
        rows, total = list_ai_generations(
            db,
            q=safe_trim(q) or None,
            generation_type=safe_trim(type) or None,
            status=safe_trim(status) or None,
            model=safe_trim(model) or None,
            limit=limit_value,
            offset=offset_value,
        )
        return {
            "rows": [summarize_generation(row) for row in rows],
            "count": total,
            "limit": limit_value,
            "offset": offset_value,
        }
