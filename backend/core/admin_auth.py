"""
Admin authentication for destructive operations.

Identity of the operator is established upstream; this module only enforces
the shared X-Admin-Key gate in front of admin routes.

Auth modes (ADMIN_AUTH_MODE):
- "legacy": X-Admin-Key compared against ADMIN_KEY / ADMIN_API_KEY (default)
- "disabled": every admin request is refused

Security guarantees:
- Unconfigured key -> 503, never an open endpoint
- Keys compared in constant time; only a hash prefix is kept as actor id
"""
import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import HTTPException, Request

from backend.core.config import settings


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_type: Literal["legacy_key"]
    actor_id: str  # "legacy:<hash>"
    actor_display: Optional[str] = None
    auth_mechanism: Literal["x_admin_key"] = "x_admin_key"


def get_admin_api_key() -> Optional[str]:
    """Get admin API key.
    Prefer ADMIN_API_KEY env var; fall back to settings.ADMIN_KEY.
    """
    env_key = os.getenv("ADMIN_API_KEY")
    if env_key:
        return env_key
    return settings.ADMIN_KEY


def verify_legacy_key(request: Request) -> Optional[AdminActor]:
    """
    Verify X-Admin-Key header.
    Returns AdminActor if valid, None if not present/invalid.
    """
    expected_key = get_admin_api_key()
    if not expected_key:
        return None

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key.encode(), expected_key.encode()):
        return None

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(
        actor_type="legacy_key",
        actor_id=f"legacy:{key_hash}",
        actor_display="Admin Key",
    )


def get_admin_actor(request: Request) -> Optional[AdminActor]:
    """
    Attempt to authenticate admin from request.
    Returns AdminActor or None (does not raise).
    """
    mode = settings.ADMIN_AUTH_MODE.lower()
    if mode != "legacy":
        return None
    return verify_legacy_key(request)


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.
    Raises HTTPException if authentication fails.

    Usage:
        @router.post("/admin/endpoint")
        def admin_endpoint(actor: AdminActor = Depends(require_admin)):
            # actor contains verified identity
            pass
    """
    actor = get_admin_actor(request)

    if not actor:
        mode = settings.ADMIN_AUTH_MODE.lower()

        if mode == "disabled" or not get_admin_api_key():
            raise HTTPException(
                status_code=503,
                detail={
                    "error": "Admin authentication not configured",
                    "code": "admin_auth_unconfigured",
                    "hint": "Set ADMIN_KEY and ADMIN_AUTH_MODE=legacy",
                }
            )

        raise HTTPException(
            status_code=401,
            detail={
                "error": "Unauthorized: invalid or missing admin credentials",
                "code": "admin_unauthorized",
                "hint": "Use the X-Admin-Key header.",
            }
        )

    return actor
