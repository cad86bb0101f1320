import json
from datetime import date

from backend.core import keys
from backend.core.config import settings
from backend.features.streaks.service import StreakTracker

ADDR = "0x" + "ab" * 20


def make_tracker(store, outbox, clock):
    return StreakTracker(store=store, outbox=outbox, clock=clock)


def test_streak_not_increment_twice_same_day(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)

    first = tracker.track_daily_activity(ADDR)
    clock.advance(hours=5)
    second = tracker.track_daily_activity(ADDR)
    third = tracker.track_daily_activity(ADDR.upper().replace("0X", "0x"))

    assert first.current == 1
    assert second == first
    assert third == first
    assert json.loads(store.get(keys.streak(ADDR))) == {"current": 1, "best": 1, "lastActive": "2025-01-01"}


def test_consecutive_days_increment(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)

    for _ in range(3):
        record = tracker.track_daily_activity(ADDR)
        clock.advance(days=1)

    assert record.current == 3
    assert record.best == 3
    assert record.last_active_day == date(2025, 1, 3)


def test_gap_restarts_at_one_and_keeps_best(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)

    tracker.track_daily_activity(ADDR)
    clock.advance(days=1)
    tracker.track_daily_activity(ADDR)
    clock.advance(days=3)
    record = tracker.track_daily_activity(ADDR)

    assert record.current == 1
    assert record.best == 2
    assert record.best >= record.current


def test_activity_set_and_monthly_leaderboard_overwrite(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)

    tracker.track_daily_activity(ADDR)
    clock.advance(days=1)
    tracker.track_daily_activity(ADDR)

    assert store.smembers(keys.streak_activity("2025-01-01")) == {ADDR}
    assert store.smembers(keys.streak_activity("2025-01-02")) == {ADDR}
    # Score is the latest streak value (2), not the sum of updates (1 + 2)
    assert store.zscore(keys.streak_leaderboard("202501"), ADDR) == 2


def test_normalize_resets_after_skipped_day_and_persists(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)
    tracker.track_daily_activity(ADDR)
    clock.advance(days=1)
    tracker.track_daily_activity(ADDR)

    clock.advance(days=2)  # D+2 from last activity: one full day skipped
    stored = tracker._load(ADDR)
    normalized = tracker.normalize_streak_if_missed(ADDR, stored)

    assert normalized.current == 0
    assert normalized.best == 2
    assert json.loads(store.get(keys.streak(ADDR)))["current"] == 0

    again = tracker.get_streak(ADDR)
    assert again.current == 0
    assert again.best == 2
    assert again.last_active_day == date(2025, 1, 2)


def test_normalize_keeps_yesterday_streak(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)
    tracker.track_daily_activity(ADDR)
    clock.advance(days=1)

    record = tracker.get_streak(ADDR)

    assert record.current == 1
    assert json.loads(store.get(keys.streak(ADDR)))["current"] == 1


def test_activity_after_normalization_starts_new_streak(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)
    tracker.track_daily_activity(ADDR)
    clock.advance(days=3)
    assert tracker.get_streak(ADDR).current == 0

    record = tracker.track_daily_activity(ADDR)

    assert record.current == 1
    assert record.best == 1


def test_unknown_address_defaults(store, outbox, clock):
    tracker = make_tracker(store, outbox, clock)

    record = tracker.get_streak(ADDR)

    assert (record.current, record.best, record.last_active_day) == (0, 0, None)
    assert store.get(keys.streak(ADDR)) is None


def test_malformed_record_treated_as_absent(store, outbox, clock):
    store.set(keys.streak(ADDR), "{not json")
    tracker = make_tracker(store, outbox, clock)

    record = tracker.track_daily_activity(ADDR)

    assert record.current == 1
    assert json.loads(store.get(keys.streak(ADDR)))["current"] == 1


def test_side_effect_failure_does_not_break_tracking(store, clock):
    from backend.core.outbox import InlineOutbox

    def explode(effect):
        raise RuntimeError("leaderboard down")

    tracker = StreakTracker(store=store, outbox=InlineOutbox(explode), clock=clock)

    record = tracker.track_daily_activity(ADDR)

    assert record.current == 1
    assert store.zscore(keys.streak_leaderboard("202501"), ADDR) is None


def test_kill_switch_returns_stored_record(store, outbox, clock, monkeypatch):
    monkeypatch.setattr(settings, "GAMIFICATION_DISABLED", True)
    tracker = make_tracker(store, outbox, clock)

    record = tracker.track_daily_activity(ADDR)

    assert record.current == 0
    assert store.get(keys.streak(ADDR)) is None
