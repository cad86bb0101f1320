"""
Admin reset route behind the X-Admin-Key header.

Tests:
- Unconfigured key -> 503
- Wrong or missing key -> 401, audited
- Disabled mode -> 503
- Valid key resets and records the actor
"""
import json

import pytest
from fastapi.testclient import TestClient

from backend.core import keys
from backend.core.config import settings
from backend.features.audit.service import get_buffered_audit_events
from backend.main import app

client = TestClient(app)

ADDR = "0x" + "77" * 20


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "legacy")
    monkeypatch.setattr(settings, "ADMIN_KEY", "test-admin-key-123")
    return "test-admin-key-123"


def test_admin_key_unconfigured(monkeypatch):
    """Test 503 when no admin key configured."""
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "legacy")
    monkeypatch.setattr(settings, "ADMIN_KEY", None)

    response = client.post(
        "/api/gamification/admin/reset", headers={"X-Admin-Key": "any-key"}, json={"scope": "all"}
    )

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "admin_auth_unconfigured"


def test_admin_auth_disabled(admin_key, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "disabled")

    response = client.post(
        "/api/gamification/admin/reset", headers={"X-Admin-Key": admin_key}, json={"scope": "all"}
    )

    assert response.status_code == 503


def test_invalid_admin_key(admin_key, store):
    """Test 401 with wrong or missing key; nothing deleted."""
    store.set(keys.streak(ADDR), json.dumps({"current": 1, "best": 1, "lastActive": "2025-01-01"}))

    wrong = client.post(
        "/api/gamification/admin/reset", headers={"X-Admin-Key": "wrong-key-999"}, json={"scope": "all"}
    )
    missing = client.post("/api/gamification/admin/reset", json={"scope": "all"})

    assert wrong.status_code == 401
    assert missing.status_code == 401
    assert wrong.json()["detail"]["code"] == "admin_unauthorized"
    assert store.get(keys.streak(ADDR)) is not None
    failures = [e for e in get_buffered_audit_events() if e["action"] == "gm.admin_auth_failed"]
    assert len(failures) == 2
    assert all(e["success"] is False for e in failures)


def test_admin_reset_with_valid_key(admin_key, store):
    store.set(keys.streak(ADDR), json.dumps({"current": 1, "best": 1, "lastActive": "2025-01-01"}))
    store.zincrby(keys.missions_leaderboard("202501"), ADDR, 20)

    response = client.post(
        "/api/gamification/admin/reset", headers={"X-Admin-Key": admin_key}, json={"scope": "streaks"}
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "deletedCount": 1}
    assert store.get(keys.streak(ADDR)) is None
    assert store.zscore(keys.missions_leaderboard("202501"), ADDR) == 20

    resets = [e for e in get_buffered_audit_events() if e["action"] == "gm.admin_reset"]
    assert len(resets) == 1
    assert resets[0]["user_id"].startswith("legacy:")
    assert admin_key not in resets[0]["user_id"]

    last = client.get("/api/gamification/admin/reset/last", headers={"X-Admin-Key": admin_key}).json()
    assert last["lastReset"]["scope"] == "streaks"


def test_admin_reset_scope_validation(admin_key, store):
    missing = client.post("/api/gamification/admin/reset", headers={"X-Admin-Key": admin_key}, json={})
    invalid = client.post(
        "/api/gamification/admin/reset", headers={"X-Admin-Key": admin_key}, json={"scope": "users"}
    )

    assert missing.status_code == 400
    assert missing.json()["error"]["message"] == "Missing scope"
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "validation_error"
    assert store.get(keys.ADMIN_LAST_RESET) is None
