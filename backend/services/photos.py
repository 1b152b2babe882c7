from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.journal import create_journal_entry
from gm.errors import InvalidInputError, NotFoundError, require_value, safe_trim
from gm.pipeline import best_effort
from models import ChapterQuest, Photo, new_id
from services.storage import PHOTOS_BUCKET, StorageError, SupabaseStorage

logger = logging.getLogger(__name__)

ALLOWED_CATEGORIES = {"initial", "final", "other"}

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/heif": "heif",
}

_EXT_PATTERN = re.compile(r"\.([a-z0-9]{2,6})$")


def pick_ext(filename: str | None, mime: str | None) -> str:
    match = _EXT_PATTERN.search((filename or "").lower())
    if match:
        return match.group(1)
    return MIME_EXTENSIONS.get((mime or "").lower(), "jpg")


def category_emoji(category: str) -> str:
    if category == "initial":
        return "🌅"
    if category == "final":
        return "🏁"
    return "✨"


def build_photo_path(
    session_id: str, chapter_quest_id: str, category: str, photo_id: str, ext: str
) -> str:
    return f"{session_id}/quests/{chapter_quest_id}/{category}/{photo_id}.{ext}"


def serialize_photo(photo: Photo, signed_url: str | None = None) -> dict[str, Any]:
    return {
        "id": photo.id,
        "created_at": photo.created_at.isoformat() if photo.created_at else None,
        "user_id": photo.user_id,
        "session_id": photo.session_id,
        "chapter_quest_id": photo.chapter_quest_id,
        "adventure_quest_id": photo.adventure_quest_id,
        "bucket": photo.bucket,
        "path": photo.path,
        "mime_type": photo.mime_type,
        "size": photo.size,
        "width": photo.width,
        "height": photo.height,
        "caption": photo.caption,
        "is_cover": photo.is_cover,
        "sort": photo.sort,
        "category": photo.category,
        "ai_description": photo.ai_description,
        "signed_url": signed_url,
    }


def _quest_in_session(db: Session, session_id: str, chapter_quest_id: str) -> ChapterQuest:
    chapter_quest = db.get(ChapterQuest, chapter_quest_id)
    if chapter_quest is None or chapter_quest.session_id != session_id:
        raise NotFoundError("Not found")
    return chapter_quest


def _sign(storage: SupabaseStorage, path: str | None) -> str | None:
    if not path:
        return None
    return best_effort("photos.sign", storage.create_signed_url, path)


def list_quest_photos(
    db: Session,
    storage: SupabaseStorage,
    *,
    session_id: str,
    chapter_quest_id: str | None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    chapter_quest_id = require_value(chapter_quest_id, "chapterQuestId")
    _quest_in_session(db, session_id, chapter_quest_id)
    rows = db.scalars(
        select(Photo)
        .where(Photo.chapter_quest_id == chapter_quest_id, Photo.session_id == session_id)
        .order_by(Photo.created_at.desc())
        .limit(max(6, limit))
    ).all()
    return [serialize_photo(row, _sign(storage, row.path)) for row in rows]


def upload_quest_photo(
    db: Session,
    storage: SupabaseStorage,
    *,
    user_id: str,
    session_id: str,
    chapter_quest_id: str | None,
    file_name: str | None,
    content_type: str | None,
    data: bytes,
    category: str = "other",
    caption: str | None = None,
    sort: int = 0,
    is_cover: bool = False,
    width: int | None = None,
    height: int | None = None,
) -> dict[str, Any]:
    chapter_quest_id = require_value(chapter_quest_id, "chapter_quest_id")
    if category not in ALLOWED_CATEGORIES:
        raise InvalidInputError("Invalid category")
    if not (content_type or "").startswith("image/"):
        raise InvalidInputError("File must be an image")

    chapter_quest = _quest_in_session(db, session_id, chapter_quest_id)
    photo_id = new_id()
    path = build_photo_path(
        session_id, chapter_quest_id, category, photo_id, pick_ext(file_name, content_type)
    )
    caption = safe_trim(caption) or None
    photo = Photo(
        id=photo_id,
        user_id=user_id,
        session_id=session_id,
        chapter_quest_id=chapter_quest_id,
        adventure_quest_id=chapter_quest.adventure_quest_id,
        bucket=PHOTOS_BUCKET,
        path=path,
        mime_type=content_type,
        size=len(data),
        width=width if width and width > 0 else None,
        height=height if height and height > 0 else None,
        caption=caption,
        is_cover=is_cover,
        sort=sort,
        category=category,
    )
    db.add(photo)
    db.flush()

    try:
        storage.upload(path, data, content_type)
    except StorageError:
        logger.warning("photos.upload.failed photo_id=%s path=%s", photo_id, path)
        db.delete(photo)
        db.flush()
        raise

    signed_url = _sign(storage, path)
    best_effort(
        "journal",
        create_journal_entry,
        db,
        session_id=session_id,
        kind="quest_photo_added",
        title=f"{category_emoji(category)} Preuve ajoutée",
        content=f"🗒️ {caption}" if caption else None,
        chapter_id=chapter_quest.chapter_id,
        adventure_quest_id=chapter_quest.adventure_quest_id,
        meta={
            "photo_id": photo_id,
            "photo_category": category,
            "chapter_quest_id": chapter_quest_id,
        },
    )
    logger.info("photos.upload.ok photo_id=%s category=%s", photo_id, category)
    return {"photo": serialize_photo(photo), "signed_url": signed_url}


def delete_photo(
    db: Session,
    storage: SupabaseStorage,
    *,
    session_id: str,
    photo_id: str | None,
) -> None:
    photo_id = require_value(photo_id, "id")
    photo = db.get(Photo, photo_id)
    if photo is None or photo.session_id != session_id:
        raise NotFoundError("Not found")
    if photo.path:
        best_effort("photos.remove", storage.remove, [photo.path])
    db.delete(photo)
    db.flush()
