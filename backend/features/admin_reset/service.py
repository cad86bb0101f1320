"""
Scoped, irreversible deletion of gamification state for season resets.

Only reachable through the authenticated admin route. Matching keys from all
of a scope's patterns are collected into one set before anything is deleted;
patterns overlap (gm:missions:* also matches proofs and boards), so the set is
what keeps each key deleted and counted once.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from backend.core import keys
from backend.core.config import settings
from backend.core.errors import ValidationError
from backend.core.store import KeyValueStore, get_store
from backend.features.audit.service import record_audit_event
from backend.models.mission import decode_json_object

logger = logging.getLogger("gm")

NS = keys.NAMESPACE

STREAK_PATTERNS = (
    f"{NS}streak:*",
    f"{NS}streak:leaderboard:*",
    f"{NS}streak:activity:*",
)
MISSION_PATTERNS = (
    f"{NS}missions:*",
    f"{NS}missions:leaderboard:*",
    f"{NS}missions:proof:*",
)
IDEMPOTENCY_PATTERNS = (f"{NS}idemp:*",)

VALID_SCOPES = ("streaks", "missions", "all")


def patterns_for(scope: str) -> List[str]:
    if scope not in VALID_SCOPES:
        raise ValidationError(f"Invalid scope '{scope}': expected one of {', '.join(VALID_SCOPES)}")
    patterns: List[str] = []
    if scope in ("streaks", "all"):
        patterns.extend(STREAK_PATTERNS)
    if scope in ("missions", "all"):
        patterns.extend(MISSION_PATTERNS)
    if scope == "all":
        patterns.extend(IDEMPOTENCY_PATTERNS)
    return patterns


class AdminResetService:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = keys.utc_now,
        batch_size: Optional[int] = None,
    ):
        self._store = store
        self._clock = clock
        self._batch_size = batch_size

    @property
    def store(self) -> KeyValueStore:
        return self._store or get_store()

    @property
    def batch_size(self) -> int:
        return self._batch_size or settings.ADMIN_RESET_BATCH_SIZE

    def admin_reset(self, scope: str, actor: Optional[str] = None) -> Dict[str, int]:
        patterns = patterns_for(scope)

        matched: Set[str] = set()
        for pattern in patterns:
            found = self.store.scan_keys(pattern)
            logger.info("gm.admin_reset.scan", extra={"pattern": pattern, "found": len(found)})
            matched.update(found)

        ordered = sorted(matched)
        deleted = 0
        for start in range(0, len(ordered), self.batch_size):
            deleted += self._delete_batch(ordered[start:start + self.batch_size])

        at_ms = int(self._clock().timestamp() * 1000)
        self.store.set(keys.ADMIN_LAST_RESET, json.dumps({"at": at_ms, "scope": scope}, separators=(",", ":")))

        record_audit_event(
            action="gm.admin_reset",
            user_id=actor,
            metadata={"scope": scope, "deleted": deleted, "matched": len(ordered)},
        )
        logger.info(
            "gm.admin_reset",
            extra={"scope": scope, "deleted": deleted, "matched": len(ordered), "actor": actor},
        )
        return {"deletedCount": deleted}

    def get_last_reset(self) -> Optional[dict]:
        return decode_json_object(self.store.get(keys.ADMIN_LAST_RESET))

    def _delete_batch(self, batch: List[str]) -> int:
        try:
            return self.store.delete(*batch)
        except Exception:
            logger.warning(
                "gm.admin_reset.batch_failed",
                exc_info=True,
                extra={"size": len(batch), "first_key": batch[0]},
            )

        deleted = 0
        for key in batch:
            try:
                deleted += self.store.delete(key)
            except Exception:
                logger.error("gm.admin_reset.key_failed", exc_info=True, extra={"key": key})
        return deleted


admin_reset_service = AdminResetService()
