from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    AdventureQuest,
    AiGeneration,
    Chapter,
    ChapterQuest,
    GameSession,
    JournalEntry,
    Photo,
)

WINDOW_DAYS = 30
TOP_TYPES = 8
RECENT_CHAPTERS = 6


def clamp_pct(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return 0
    return max(0, min(100, value))


def to_pct(
    *,
    pct: float | None = None,
    value: float | None = None,
    max: float | None = None,
) -> float:
    if pct is not None:
        return clamp_pct(pct)
    if max is None or not max > 0:
        max = 100
    return clamp_pct(((value or 0) / max) * 100)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def activity_last_days(
    moments: Iterable[datetime], now: datetime, days: int = WINDOW_DAYS
) -> list[dict[str, Any]]:
    counts = Counter(as_utc(moment).date() for moment in moments)
    today = as_utc(now).date()
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    return [{"date": day.isoformat(), "count": counts.get(day, 0)} for day in window]


def current_streak(active_days: set[date], today: date) -> int:
    streak = 0
    while today - timedelta(days=streak) in active_days:
        streak += 1
    return streak


def best_streak(active_days: set[date]) -> int:
    best = run = 0
    previous: date | None = None
    for day in sorted(active_days):
        run = run + 1 if previous is not None and (day - previous).days == 1 else 1
        best = max(best, run)
        previous = day
    return best


def _count_by(values: Iterable[Any], default: str) -> dict[str, int]:
    return dict(Counter(str(value) if value is not None else default for value in values))


def compute_player_stats(
    db: Session,
    user_id: str,
    session: GameSession,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = as_utc(now or datetime.now(timezone.utc))
    since = now - timedelta(days=WINDOW_DAYS)
    session_id = session.id

    chapters = db.scalars(
        select(Chapter).where(Chapter.session_id == session_id).order_by(Chapter.created_at.desc())
    ).all()
    chapter_quests = db.scalars(
        select(ChapterQuest).where(ChapterQuest.session_id == session_id)
    ).all()
    adventure_quests = {
        quest.id: quest
        for quest in db.scalars(
            select(AdventureQuest).where(AdventureQuest.session_id == session_id)
        )
    }
    journal = db.scalars(
        select(JournalEntry)
        .where(JournalEntry.session_id == session_id)
        .order_by(JournalEntry.created_at.desc())
        .limit(1500)
    ).all()
    generations = [
        row
        for row in db.scalars(
            select(AiGeneration).where(
                AiGeneration.session_id == session_id, AiGeneration.user_id == user_id
            )
        )
        if row.created_at and as_utc(row.created_at) >= since
    ]
    photos = db.scalars(
        select(Photo).where(Photo.session_id == session_id, Photo.user_id == user_id)
    ).all()

    difficulties: list[int] = []
    rooms: set[str] = set()
    for chapter_quest in chapter_quests:
        quest = adventure_quests.get(chapter_quest.adventure_quest_id)
        if quest is None:
            continue
        if quest.difficulty is not None:
            difficulties.append(quest.difficulty)
        if quest.room_code and quest.room_code.strip():
            rooms.add(quest.room_code)
    quests_done = sum(1 for quest in chapter_quests if quest.status == "done")

    journal_moments = [as_utc(entry.created_at) for entry in journal if entry.created_at]
    recent_moments = [moment for moment in journal_moments if moment >= since]
    activity = activity_last_days(recent_moments, now)
    active_days = {moment.date() for moment in journal_moments}

    durations = [row.duration_ms for row in generations if row.duration_ms is not None]
    type_counts = Counter(row.generation_type or "unknown" for row in generations)

    return {
        "session": {
            "id": session_id,
            "created_at": session.created_at.isoformat() if session.created_at else None,
        },
        "progression": {
            "chapters": {
                "total": len(chapters),
                "by_status": _count_by((chapter.status for chapter in chapters), "unknown"),
                "recent": [
                    {
                        "id": chapter.id,
                        "title": chapter.title,
                        "status": chapter.status,
                        "created_at": chapter.created_at.isoformat() if chapter.created_at else None,
                        "chapter_code": chapter.chapter_code,
                        "adventure_id": chapter.adventure_id,
                    }
                    for chapter in chapters[:RECENT_CHAPTERS]
                ],
            },
            "quests": {
                "total": len(chapter_quests),
                "done": quests_done,
                "todo": sum(1 for quest in chapter_quests if quest.status == "todo"),
                "by_status": _count_by((quest.status for quest in chapter_quests), "unknown"),
                "difficulty_avg": (
                    round(sum(difficulties) / len(difficulties), 1) if difficulties else None
                ),
                "rooms_touched_count": len(rooms),
                "completion_pct": to_pct(value=quests_done, max=len(chapter_quests)),
            },
        },
        "activity": {
            "last_entry_at": recent_moments[0].isoformat() if recent_moments else None,
            "current_streak_days": current_streak(active_days, now.date()),
            "best_streak_days": best_streak(active_days),
            "active_days_last_30": sum(1 for day in activity if day["count"] > 0),
            "activity_last_30": activity,
        },
        "ai": {
            "generations_last_30": {
                "total": len(generations),
                "success": sum(1 for row in generations if row.status == "success"),
                "error": sum(1 for row in generations if row.status == "error"),
                "avg_duration_ms": round(sum(durations) / len(durations)) if durations else None,
                "types_top": [
                    {"type": name, "count": count}
                    for name, count in type_counts.most_common(TOP_TYPES)
                ],
            },
        },
        "photos": {
            "total": len(photos),
            "cover_total": sum(1 for photo in photos if photo.is_cover),
            "last_30": sum(
                1 for photo in photos if photo.created_at and as_utc(photo.created_at) >= since
            ),
            "by_category": _count_by((photo.category for photo in photos), "other"),
        },
        "meta": {
            "generated_at": now.isoformat(),
            "windows": {"last_30_from": since.isoformat()},
        },
    }
