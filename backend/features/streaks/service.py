from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from backend.core import keys
from backend.core.config import settings
from backend.core.logging import log_event
from backend.core.outbox import Outbox, SideEffect, get_outbox
from backend.core.store import KeyValueStore, get_store
from backend.models.mission import decode_json_object
from backend.models.streak import StreakRecord
from backend.workers.side_effects import ACTIVITY_ADD, STREAK_LEADERBOARD_SET

logger = logging.getLogger("gm")


class StreakTracker:
    """Idempotent per-day streak state machine over the shared store.

    Streak writes are plain get/set: the only race is the same address being
    active twice on one day, and the same-day early return makes that a no-op.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        outbox: Optional[Outbox] = None,
        clock: Callable[[], datetime] = keys.utc_now,
    ):
        self._store = store
        self._outbox = outbox
        self._clock = clock

    @property
    def store(self) -> KeyValueStore:
        return self._store or get_store()

    @property
    def outbox(self) -> Outbox:
        return self._outbox or get_outbox()

    def today(self) -> date:
        return keys.day_of(self._clock())

    def get_streak(self, address: str) -> StreakRecord:
        """Current streak as seen by callers; always normalized for missed days."""
        record = self._load(keys.normalize_address(address))
        return self.normalize_streak_if_missed(record.address, record)

    def track_daily_activity(self, address: str) -> StreakRecord:
        addr = keys.normalize_address(address)
        if settings.GAMIFICATION_DISABLED:
            return self._load(addr)

        today = self.today()
        record = self._load(addr)
        if record.last_active_day == today:
            return record

        consecutive = record.last_active_day == keys.previous_day(today)
        record.current = record.current + 1 if consecutive else 1
        record.best = max(record.best, record.current)
        record.last_active_day = today
        self._save(record)

        day = keys.day_str(today)
        self.outbox.submit(SideEffect(ACTIVITY_ADD, {"day": day, "address": addr}))
        self.outbox.submit(
            SideEffect(
                STREAK_LEADERBOARD_SET,
                {"month": keys.to_month(today), "address": addr, "score": record.current},
            )
        )
        log_event(
            "info",
            "gm.streak.tracked",
            address=addr,
            event_type="streak",
            extra={"current": record.current, "best": record.best, "consecutive": consecutive},
        )
        return record

    def normalize_streak_if_missed(self, address: str, record: StreakRecord) -> StreakRecord:
        """Zero `current` once a full UTC day was skipped; `best` is preserved.

        The correction is persisted so later reads agree without recomputing.
        If persisting fails the stored record is returned untouched.
        """
        last = record.last_active_day
        if last is None or record.current == 0:
            return record
        today = self.today()
        if last >= keys.previous_day(today):
            return record

        corrected = StreakRecord(
            address=keys.normalize_address(address),
            current=0,
            best=max(record.best, record.current),
            last_active_day=last,
        )
        try:
            self._save(corrected)
        except Exception:
            logger.warning("gm.streak.normalize_failed", exc_info=True, extra={"address": corrected.address})
            return record
        logger.info(
            "gm.streak.normalized",
            extra={"address": corrected.address, "previous": record.current, "last_active": last.isoformat()},
        )
        return corrected

    # Internal helpers -------------------------------------------------
    def _load(self, address: str) -> StreakRecord:
        raw = self.store.get(keys.streak(address))
        data = decode_json_object(raw)
        if raw is not None and data is None:
            logger.warning("gm.streak.malformed_record", extra={"address": address})
        return StreakRecord.from_dict(address, data or {})

    def _save(self, record: StreakRecord) -> None:
        self.store.set(keys.streak(record.address), record.to_json())


# Singleton service used by routes
streak_tracker = StreakTracker()
