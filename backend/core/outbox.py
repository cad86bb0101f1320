"""
Outbox for best-effort side effects.

The primary write (streak record, mission day) is the source of truth. Anything
derived from it (leaderboard scores, activity sets, proofs, rewards) is handed
to an outbox as a SideEffect record after the primary write commits and is
applied detached from the caller. Failures are logged, never raised.

Modes (SIDE_EFFECTS_MODE):
- "thread": in-process queue drained by a daemon worker thread (default)
- "inline": applied immediately in the caller
- "rq": enqueued on Redis for an RQ worker (backend.workers.side_effects)
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from backend.core.config import settings

logger = logging.getLogger("gm")

RQ_JOB_PATH = "backend.workers.side_effects.run_side_effect"


@dataclass(frozen=True)
class SideEffect:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


Executor = Callable[[SideEffect], None]


def _log_failure(effect: SideEffect, exc: BaseException, stage: str) -> None:
    logger.warning(
        "gm.side_effect.failed",
        exc_info=exc,
        extra={"kind": effect.kind, "stage": stage, "address": effect.payload.get("address")},
    )


class Outbox(ABC):
    @abstractmethod
    def submit(self, effect: SideEffect) -> None:
        """Hand off an effect. Must never raise."""

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until submitted effects were attempted (no-op where not applicable)."""

    def close(self) -> None:
        pass


class InlineOutbox(Outbox):
    def __init__(self, executor: Executor):
        self._executor = executor

    def submit(self, effect: SideEffect) -> None:
        try:
            self._executor(effect)
        except Exception as exc:
            _log_failure(effect, exc, "execute")


class ThreadOutbox(Outbox):
    """Single daemon worker draining an unbounded in-process queue."""

    _STOP = object()

    def __init__(self, executor: Executor, name: str = "gm-outbox"):
        self._executor = executor
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def _ensure_worker(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        with self._start_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self._executor(item)
            except Exception as exc:
                _log_failure(item, exc, "execute")
            finally:
                self._queue.task_done()

    def submit(self, effect: SideEffect) -> None:
        try:
            self._ensure_worker()
            self._queue.put_nowait(effect)
        except Exception as exc:
            _log_failure(effect, exc, "enqueue")

    def flush(self, timeout: Optional[float] = None) -> None:
        if timeout is None:
            self._queue.join()
            return
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return
                self._queue.all_tasks_done.wait(remaining)

    def close(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(self._STOP)
            self._thread.join(timeout=5)


class RQOutbox(Outbox):
    def __init__(self, rq_queue):
        self._queue = rq_queue

    @classmethod
    def from_url(cls, redis_url: str, queue_name: str) -> "RQOutbox":
        from redis import Redis
        from rq import Queue

        return cls(Queue(queue_name, connection=Redis.from_url(redis_url)))

    def submit(self, effect: SideEffect) -> None:
        try:
            self._queue.enqueue(
                RQ_JOB_PATH,
                effect.kind,
                effect.payload,
                job_timeout="1m",
                result_ttl=0,
                failure_ttl=86400,  # keep failed effects for a day
            )
        except Exception as exc:
            _log_failure(effect, exc, "enqueue")


_outbox: Optional[Outbox] = None
_outbox_lock = threading.Lock()


def build_outbox(mode: Optional[str] = None, executor: Optional[Executor] = None) -> Outbox:
    selected = (mode or settings.SIDE_EFFECTS_MODE or "thread").lower()
    if selected == "rq":
        return RQOutbox.from_url(settings.REDIS_URL, settings.SIDE_EFFECTS_QUEUE)

    if executor is None:
        from backend.workers.side_effects import apply_side_effect
        from backend.core.store import get_store

        def executor(effect: SideEffect) -> None:
            apply_side_effect(get_store(), effect)

    if selected == "inline":
        return InlineOutbox(executor)
    return ThreadOutbox(executor)


def get_outbox() -> Outbox:
    global _outbox
    if _outbox is None:
        with _outbox_lock:
            if _outbox is None:
                _outbox = build_outbox()
    return _outbox


def set_outbox(outbox: Optional[Outbox]) -> None:
    global _outbox
    with _outbox_lock:
        previous, _outbox = _outbox, outbox
    if previous is not None and previous is not outbox:
        previous.close()
