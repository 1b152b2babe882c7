from datetime import date, datetime, timedelta, timezone

from models import AiGeneration, ChapterQuest, GameSession, JournalEntry, Photo
from stats.player import (
    activity_last_days,
    as_utc,
    best_streak,
    clamp_pct,
    compute_player_stats,
    current_streak,
    to_pct,
)


def test_clamp_and_to_pct() -> None:
    assert clamp_pct(None) == 0
    assert clamp_pct(float("nan")) == 0
    assert clamp_pct(float("inf")) == 0
    assert clamp_pct(-5) == 0
    assert clamp_pct(150) == 100
    assert to_pct(pct=42) == 42
    assert to_pct(value=1, max=4) == 25
    assert to_pct(value=3, max=0) == 3
    assert to_pct(value=None, max=10) == 0


def test_as_utc_handles_naive_values() -> None:
    naive = datetime(2026, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo == timezone.utc
    shifted = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(shifted).hour == 10


def test_streaks() -> None:
    today = date(2026, 3, 10)
    days = {today, today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=5)}
    assert current_streak(days, today) == 3
    assert current_streak(days, today + timedelta(days=1)) == 0
    assert best_streak(days) == 3
    assert best_streak(set()) == 0


def test_activity_window_is_dense() -> None:
    now = datetime(2026, 3, 10, 9, tzinfo=timezone.utc)
    activity = activity_last_days([now, now - timedelta(hours=1), now - timedelta(days=2)], now, days=3)
    assert activity == [
        {"date": "2026-03-08", "count": 1},
        {"date": "2026-03-09", "count": 0},
        {"date": "2026-03-10", "count": 2},
    ]


def test_compute_player_stats(db, world) -> None:
    now = datetime.now(timezone.utc)
    db.get(ChapterQuest, world.chapter_quest_id).status = "done"
    db.add(ChapterQuest(session_id=world.session_id, chapter_id=world.chapter_id, status="todo"))
    for offset in (0, 1, 40):
        db.add(
            JournalEntry(
                session_id=world.session_id,
                kind="note",
                title=f"J-{offset}",
                created_at=now - timedelta(days=offset),
            )
        )
    for status, offset, duration in (("success", 1, 100), ("error", 2, 300), ("success", 45, 50)):
        db.add(
            AiGeneration(
                session_id=world.session_id,
                user_id=world.user_id,
                generation_type="congrat",
                model="gpt-test",
                status=status,
                request_json={"model": "gpt-test"},
                duration_ms=duration,
                created_at=now - timedelta(days=offset),
            )
        )
    db.add(
        Photo(
            user_id=world.user_id,
            session_id=world.session_id,
            chapter_quest_id=world.chapter_quest_id,
            path="p.jpg",
            category="final",
            is_cover=True,
            created_at=now - timedelta(days=3),
        )
    )
    db.commit()

    stats = compute_player_stats(db, world.user_id, db.get(GameSession, world.session_id), now=now)

    quests = stats["progression"]["quests"]
    assert quests["total"] == 2
    assert quests["done"] == 1
    assert quests["todo"] == 1
    assert quests["completion_pct"] == 50
    assert quests["difficulty_avg"] == 2.0
    assert quests["rooms_touched_count"] == 1
    assert stats["progression"]["chapters"]["by_status"] == {"active": 1}

    activity = stats["activity"]
    assert len(activity["activity_last_30"]) == 30
    assert activity["current_streak_days"] == 2
    assert activity["best_streak_days"] == 2
    assert activity["active_days_last_30"] == 2

    ai = stats["ai"]["generations_last_30"]
    assert ai["total"] == 2
    assert ai["success"] == 1
    assert ai["error"] == 1
    assert ai["avg_duration_ms"] == 200
    assert ai["types_top"] == [{"type": "congrat", "count": 2}]

    assert stats["photos"] == {
        "total": 1,
        "cover_total": 1,
        "last_30": 1,
        "by_category": {"final": 1},
    }
    assert stats["session"]["id"] == world.session_id


def test_compute_player_stats_for_empty_session(db) -> None:
    session = GameSession(user_id="u-empty")
    db.add(session)
    db.commit()

    stats = compute_player_stats(db, "u-empty", session)

    assert stats["progression"]["quests"]["completion_pct"] == 0
    assert stats["progression"]["quests"]["difficulty_avg"] is None
    assert stats["activity"]["last_entry_at"] is None
    assert stats["activity"]["current_streak_days"] == 0
    assert stats["ai"]["generations_last_30"]["avg_duration_ms"] is None
