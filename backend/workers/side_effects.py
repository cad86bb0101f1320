# backend/workers/side_effects.py
"""
Consumers for outbox side effects.

Run an RQ worker for SIDE_EFFECTS_MODE=rq with:
    rq worker -u redis://localhost:6379 gm-side-effects
The thread and inline outboxes call apply_side_effect directly.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from backend.core import keys
from backend.core.idempotency import check_and_set
from backend.core.outbox import SideEffect
from backend.core.store import KeyValueStore, get_store
from backend.features.audit.service import record_audit_event

logger = logging.getLogger("gm")

STREAK_LEADERBOARD_SET = "streak_leaderboard_set"
ACTIVITY_ADD = "activity_add"
MISSION_LEADERBOARD_INCR = "mission_leaderboard_incr"
PROOF_PUT = "proof_put"
REWARD_ISSUE = "reward_issue"


def _streak_leaderboard_set(store: KeyValueStore, payload: Dict[str, Any]) -> None:
    # Overwrite: the board shows each address's latest streak, not a running sum
    store.zset_score(keys.streak_leaderboard(payload["month"]), payload["address"], payload["score"])


def _activity_add(store: KeyValueStore, payload: Dict[str, Any]) -> None:
    store.sadd(keys.streak_activity(payload["day"]), payload["address"])


def _mission_leaderboard_incr(store: KeyValueStore, payload: Dict[str, Any]) -> None:
    store.zincrby(keys.missions_leaderboard(payload["month"]), payload["address"], payload["delta"])


def _proof_put(store: KeyValueStore, payload: Dict[str, Any]) -> None:
    store.set(
        keys.proof(payload["address"], payload["day"], payload["taskId"]),
        json.dumps(payload["proof"], separators=(",", ":"), default=str),
    )


def _reward_issue(store: KeyValueStore, payload: Dict[str, Any]) -> None:
    address = payload["address"]
    reward_id = payload["rewardId"]
    if check_and_set(store, address, reward_id, metadata={"day": payload.get("day")}):
        logger.info("gm.reward.duplicate", extra={"address": address, "reward_id": reward_id})
        return
    record_audit_event(
        action="gm.reward_issued",
        user_id=address,
        metadata={"reward_id": reward_id, "day": payload.get("day"), "pts": payload.get("pts")},
    )
    logger.info("gm.reward.issued", extra={"address": address, "reward_id": reward_id})


HANDLERS: Dict[str, Callable[[KeyValueStore, Dict[str, Any]], None]] = {
    STREAK_LEADERBOARD_SET: _streak_leaderboard_set,
    ACTIVITY_ADD: _activity_add,
    MISSION_LEADERBOARD_INCR: _mission_leaderboard_incr,
    PROOF_PUT: _proof_put,
    REWARD_ISSUE: _reward_issue,
}


def apply_side_effect(store: KeyValueStore, effect: SideEffect) -> None:
    """Apply one effect; raises on unknown kinds and store failures."""
    handler = HANDLERS.get(effect.kind)
    if handler is None:
        raise ValueError(f"Unknown side effect kind: {effect.kind}")
    handler(store, effect.payload)


def run_side_effect(kind: str, payload: Dict[str, Any]) -> None:
    """RQ job entry point. Failures are logged and re-raised so RQ keeps the job."""
    effect = SideEffect(kind=kind, payload=payload)
    try:
        apply_side_effect(get_store(), effect)
    except Exception:
        logger.error(
            "gm.side_effect.failed",
            exc_info=True,
            extra={"kind": kind, "stage": "rq", "at": datetime.now(timezone.utc).isoformat()},
        )
        raise
