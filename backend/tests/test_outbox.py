"""
backend/tests/test_outbox.py
Detached side effects: thread/inline/rq outboxes and the effect handlers.
"""

import logging
import threading
from unittest.mock import MagicMock

import pytest

from backend.core import keys
from backend.core.outbox import (
    RQ_JOB_PATH,
    InlineOutbox,
    RQOutbox,
    SideEffect,
    ThreadOutbox,
    build_outbox,
)
from backend.workers import side_effects
from backend.workers.side_effects import apply_side_effect, run_side_effect

ADDR = "0x" + "ee" * 20


def test_thread_outbox_applies_in_order_and_flushes(store):
    box = ThreadOutbox(lambda effect: apply_side_effect(store, effect))
    try:
        for delta in (10, 20, 30):
            box.submit(SideEffect(side_effects.MISSION_LEADERBOARD_INCR, {"month": "202501", "address": ADDR, "delta": delta}))
        box.flush()
    finally:
        box.close()

    assert store.zscore(keys.missions_leaderboard("202501"), ADDR) == 60


def test_thread_outbox_survives_failing_effect(store, caplog):
    applied = []

    def executor(effect):
        if effect.kind == "boom":
            raise RuntimeError("boom")
        applied.append(effect.kind)

    box = ThreadOutbox(executor)
    with caplog.at_level(logging.WARNING, logger="gm"):
        box.submit(SideEffect("boom", {"address": ADDR}))
        box.submit(SideEffect("after", {}))
        box.flush(timeout=5)
    box.close()

    assert applied == ["after"]
    failed = [r for r in caplog.records if r.getMessage() == "gm.side_effect.failed"]
    assert failed and failed[0].kind == "boom"


def test_thread_outbox_runs_off_caller_thread():
    seen = []
    box = ThreadOutbox(lambda effect: seen.append(threading.current_thread().name))
    box.submit(SideEffect("noop"))
    box.flush(timeout=5)
    box.close()

    assert seen and seen[0] != threading.current_thread().name


def test_thread_outbox_flush_timeout_leaves_no_waiter_threads():
    release = threading.Event()
    box = ThreadOutbox(lambda effect: release.wait(5))
    box.submit(SideEffect("stuck"))
    before = threading.active_count()
    try:
        for _ in range(3):
            box.flush(timeout=0.05)

        assert threading.active_count() == before
    finally:
        release.set()
        box.close()


def test_inline_outbox_never_raises():
    box = InlineOutbox(MagicMock(side_effect=ConnectionError("down")))

    box.submit(SideEffect(side_effects.PROOF_PUT, {"address": ADDR}))


def test_rq_outbox_enqueues_job_path():
    rq_queue = MagicMock()
    box = RQOutbox(rq_queue)
    effect = SideEffect(side_effects.ACTIVITY_ADD, {"day": "2025-01-01", "address": ADDR})

    box.submit(effect)

    args, kwargs = rq_queue.enqueue.call_args
    assert args == (RQ_JOB_PATH, side_effects.ACTIVITY_ADD, effect.payload)
    assert kwargs["result_ttl"] == 0


def test_rq_outbox_swallows_enqueue_failure():
    rq_queue = MagicMock()
    rq_queue.enqueue.side_effect = ConnectionError("redis down")

    RQOutbox(rq_queue).submit(SideEffect(side_effects.ACTIVITY_ADD, {"address": ADDR}))


def test_build_outbox_modes():
    executor = MagicMock()

    assert isinstance(build_outbox("inline", executor), InlineOutbox)
    threaded = build_outbox("thread", executor)
    assert isinstance(threaded, ThreadOutbox)
    threaded.close()


def test_run_side_effect_uses_process_store(store):
    run_side_effect(side_effects.STREAK_LEADERBOARD_SET, {"month": "202501", "address": ADDR, "score": 4})
    run_side_effect(side_effects.STREAK_LEADERBOARD_SET, {"month": "202501", "address": ADDR, "score": 2})

    assert store.zscore(keys.streak_leaderboard("202501"), ADDR) == 2


def test_run_side_effect_reraises_unknown_kind():
    with pytest.raises(ValueError):
        run_side_effect("teleport", {})


def test_proof_and_reward_handlers(store):
    apply_side_effect(
        store,
        SideEffect(side_effects.PROOF_PUT, {"address": ADDR, "day": "2025-01-01", "taskId": "s3_claim_stake", "proof": {"txHash": "0x9"}}),
    )
    reward = SideEffect(side_effects.REWARD_ISSUE, {"address": ADDR, "rewardId": "day_complete:2025-01-01", "day": "2025-01-01"})
    apply_side_effect(store, reward)
    apply_side_effect(store, reward)

    assert store.get(keys.proof(ADDR, "2025-01-01", "s3_claim_stake")) == '{"txHash":"0x9"}'
    assert store.get(keys.idempotency(ADDR, "day_complete:2025-01-01")) is not None
