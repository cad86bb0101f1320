import logging

from backend.features.audit.service import record_audit_event, get_buffered_audit_events
from backend.core.config import settings


def test_audit_buffer_records_event(monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_ENABLED", True)

    before = len(get_buffered_audit_events())
    record_audit_event(action="gm.admin_reset", user_id="legacy:abc", request_id="rid-123", metadata={"scope": "all"})
    after = get_buffered_audit_events()

    assert len(after) == before + 1
    event = after[-1]
    assert event["request_id"] == "rid-123"
    assert event["metadata"] == {"scope": "all"}
    assert event["ts"].tzinfo is not None


def test_audit_disabled_records_nothing(monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_ENABLED", False)

    record_audit_event(action="gm.admin_reset", user_id="u1")

    assert get_buffered_audit_events() == []


def test_audit_metadata_truncated_and_logged(caplog):
    with caplog.at_level(logging.INFO, logger="gm"):
        record_audit_event(action="gm.reward_issued", user_id="0xabc", metadata={"blob": "y" * 2000})

    event = get_buffered_audit_events()[-1]
    assert event["metadata"]["blob"].endswith("...<truncated>")
    logged = [r for r in caplog.records if r.getMessage() == "audit.event"]
    assert logged and logged[0].action == "gm.reward_issued"


def test_failed_event_logged_as_warning(caplog):
    with caplog.at_level(logging.INFO, logger="gm"):
        record_audit_event(action="gm.admin_auth_failed", user_id=None, success=False)

    logged = [r for r in caplog.records if r.getMessage() == "audit.event"]
    assert logged[0].levelno == logging.WARNING
