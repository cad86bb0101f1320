from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from backend.core import keys
from backend.core.config import settings
from backend.core.errors import StoreUnavailableError, UpdateContentionError, ValidationError
from backend.core.logging import log_event
from backend.core.outbox import Outbox, SideEffect, get_outbox
from backend.core.store import KeyValueStore, get_store
from backend.features.leaderboards.service import resolve_month
from backend.features.missions.tasks import VALID_TASK_IDS, apply_task_progress, award_points
from backend.models.mission import MissionDay, ProofRecord, decode_json_object
from backend.workers.side_effects import MISSION_LEADERBOARD_INCR, PROOF_PUT, REWARD_ISSUE

logger = logging.getLogger("gm")

ProofInput = Union[ProofRecord, Dict[str, Any], None]


class MissionProgressTracker:
    """Daily mission progress with lost-update-free writes.

    Every mutation is read -> apply -> compare-and-set against the raw value
    read, retried up to MISSION_CAS_MAX_ATTEMPTS times. A conflicting writer
    forces a re-read, so the section predicates are always evaluated on the
    latest state and a section is never awarded twice.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        outbox: Optional[Outbox] = None,
        clock: Callable[[], datetime] = keys.utc_now,
        max_attempts: Optional[int] = None,
        count_cap: Optional[int] = None,
    ):
        self._store = store
        self._outbox = outbox
        self._clock = clock
        self._max_attempts = max_attempts
        self._count_cap = count_cap

    @property
    def store(self) -> KeyValueStore:
        return self._store or get_store()

    @property
    def outbox(self) -> Outbox:
        return self._outbox or get_outbox()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts or settings.MISSION_CAS_MAX_ATTEMPTS

    @property
    def count_cap(self) -> int:
        return self._count_cap or settings.MISSION_COUNT_CAP

    def today(self) -> str:
        return keys.day_str(keys.day_of(self._clock()))

    def get_mission_day(self, address: str, day: Optional[str] = None) -> MissionDay:
        """Return the day's record, persisting a zeroed one on first access.

        Only today's record is created; other days are read-only lookups and
        come back zeroed when nothing was stored.
        """
        addr = keys.normalize_address(address)
        today = self.today()
        d = self._validate_day(day) if day else today
        key = keys.missions(addr, d)

        raw = self.store.get(key)
        data = self._decode(raw, addr, d)
        if data is not None or d != today:
            return MissionDay.from_dict(data, d)

        initial = MissionDay.initial(d)
        if self.store.compare_and_set(key, raw, initial.to_json()):
            return initial
        # A concurrent writer created it first; theirs wins.
        return MissionDay.from_dict(self._decode(self.store.get(key), addr, d), d)

    def apply_task(
        self,
        address: str,
        task_id: str,
        proof: ProofInput = None,
        count: Any = 1,
    ) -> MissionDay:
        if task_id not in VALID_TASK_IDS:
            raise ValidationError(f"Invalid taskId '{task_id}'")

        addr = keys.normalize_address(address)
        d = self.today()
        key = keys.missions(addr, d)

        if settings.GAMIFICATION_DISABLED:
            return MissionDay.from_dict(self._decode(self.store.get(key), addr, d), d)

        safe_count = self._safe_count(count)
        attempts = self.max_attempts
        last_error: Optional[StoreUnavailableError] = None

        for attempt in range(1, attempts + 1):
            try:
                raw = self.store.get(key)
                mission = MissionDay.from_dict(self._decode(raw, addr, d), d)
                already_completed = mission.completed_at is not None
                apply_task_progress(mission, task_id, safe_count)
                gained = award_points(mission, self._now_ms())
                committed = self.store.compare_and_set(key, raw, mission.to_json())
            except StoreUnavailableError as exc:
                last_error = exc
                logger.warning(
                    "gm.mission.store_error",
                    extra={"address": addr, "task_id": task_id, "attempt": attempt},
                )
                continue

            if not committed:
                last_error = None
                logger.info(
                    "gm.mission.cas_conflict",
                    extra={"address": addr, "task_id": task_id, "attempt": attempt},
                )
                continue

            completed_now = not already_completed and mission.completed_at is not None
            self._after_commit(addr, d, task_id, mission, gained, completed_now, proof)
            log_event(
                "info",
                "gm.mission.applied",
                address=addr,
                event_type="mission",
                extra={"task_id": task_id, "gained": gained, "pts": mission.pts, "attempt": attempt},
            )
            return mission

        if last_error is not None:
            raise StoreUnavailableError(
                f"Failed to update mission progress after {attempts} attempts: {last_error.message}"
            ) from last_error
        raise UpdateContentionError(
            f"Failed to update mission progress after {attempts} attempts: concurrent updates",
            key=key,
            attempts=attempts,
        )

    def get_mission_score(self, address: str, month: Optional[str] = None) -> Union[int, float]:
        """Mission points for one month, or summed over every month for the combined view."""
        addr = keys.normalize_address(address)
        target = resolve_month(month)
        if target is not None:
            return _as_number(self.store.zscore(keys.missions_leaderboard(target), addr) or 0)

        total = 0.0
        for board_key in self.store.scan_keys(keys.MISSIONS_LEADERBOARD_PATTERN):
            try:
                score = self.store.zscore(board_key, addr)
            except Exception:
                logger.warning("gm.mission.score_unreadable", exc_info=True, extra={"key": board_key})
                continue
            if score is not None:
                total += score
        return _as_number(total)

    # Internal helpers -------------------------------------------------
    def _after_commit(
        self,
        address: str,
        day: str,
        task_id: str,
        mission: MissionDay,
        gained: int,
        completed_now: bool,
        proof: ProofInput,
    ) -> None:
        if gained > 0:
            self.outbox.submit(
                SideEffect(
                    MISSION_LEADERBOARD_INCR,
                    {"month": keys.to_month(day), "address": address, "delta": gained},
                )
            )

        record = self._coerce_proof(address, day, task_id, proof)
        if record is not None and record.has_payload:
            self.outbox.submit(
                SideEffect(
                    PROOF_PUT,
                    {"address": address, "day": day, "taskId": task_id, "proof": record.to_dict()},
                )
            )

        if completed_now:
            self.outbox.submit(
                SideEffect(
                    REWARD_ISSUE,
                    {"address": address, "rewardId": f"day_complete:{day}", "day": day, "pts": mission.pts},
                )
            )

    def _decode(self, raw: Optional[str], address: str, day: str) -> Optional[dict]:
        data = decode_json_object(raw)
        if raw is not None and data is None:
            logger.warning("gm.mission.malformed_record", extra={"address": address, "day": day})
        return data

    def _safe_count(self, count: Any) -> int:
        if isinstance(count, bool) or not isinstance(count, (int, float)):
            return 1
        if count != count or count < 1:
            return 1
        return int(min(self.count_cap, count))

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @staticmethod
    def _validate_day(day: str) -> str:
        parsed = keys.parse_day(day)
        if parsed is None:
            raise ValidationError(f"Invalid day '{day}': expected YYYY-MM-DD")
        return keys.day_str(parsed)

    @staticmethod
    def _coerce_proof(address: str, day: str, task_id: str, proof: ProofInput) -> Optional[ProofRecord]:
        if proof is None or isinstance(proof, ProofRecord):
            return proof
        meta = proof.get("meta")
        return ProofRecord(
            address=address,
            day=day,
            task_id=task_id,
            tx_hash=proof.get("txHash") or proof.get("tx_hash"),
            meta=meta if isinstance(meta, dict) else None,
        )


def _as_number(value: float) -> Union[int, float]:
    return int(value) if float(value).is_integer() else value


mission_tracker = MissionProgressTracker()
