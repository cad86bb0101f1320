# backend/conftest.py
import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

from backend.core.outbox import InlineOutbox, set_outbox  # noqa: E402
from backend.core.store import InMemoryStore, set_store  # noqa: E402
from backend.features.audit.service import clear_buffered_audit_events  # noqa: E402
from backend.workers.side_effects import apply_side_effect  # noqa: E402


class FrozenClock:
    """Callable clock for services; advance() moves it forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture(scope="function", autouse=True)
def store():
    """
    Fresh in-memory store per test, installed as the process-wide store.

    Uses a non-empty prefix so key prefixing is exercised everywhere.
    """
    mem = InMemoryStore(prefix="test:")
    set_store(mem)
    yield mem
    set_store(None)


@pytest.fixture(scope="function", autouse=True)
def outbox(store):
    """Inline outbox so side effects are visible as soon as a call returns."""
    box = InlineOutbox(lambda effect: apply_side_effect(store, effect))
    set_outbox(box)
    yield box
    set_outbox(None)


@pytest.fixture(scope="function", autouse=True)
def clean_audit_events():
    clear_buffered_audit_events()
    yield
    clear_buffered_audit_events()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))
