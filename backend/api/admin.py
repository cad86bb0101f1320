"""
Admin API routes for gamification resets.

All routes require the X-Admin-Key header; failed attempts are audited.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from backend.core.admin_auth import AdminActor, require_admin
from backend.core.errors import ValidationError
from backend.features.admin_reset.service import admin_reset_service
from backend.features.audit.service import record_audit_event

router = APIRouter(prefix="/api/gamification/admin", tags=["admin"])


class ResetRequest(BaseModel):
    scope: Optional[str] = None


def require_admin_audited(request: Request) -> AdminActor:
    try:
        return require_admin(request)
    except HTTPException as exc:
        record_audit_event(
            action="gm.admin_auth_failed",
            user_id=None,
            metadata={"path": request.url.path, "status": exc.status_code},
            ip=request.client.host if request.client else None,
            success=False,
        )
        raise


@router.post("/reset")
def reset(body: ResetRequest, actor: AdminActor = Depends(require_admin_audited)) -> dict:
    """Delete streak and/or mission state. Irreversible."""
    if not body.scope:
        raise ValidationError("Missing scope")
    result = admin_reset_service.admin_reset(body.scope, actor=actor.actor_id)
    return {"success": True, **result}


@router.get("/reset/last")
def last_reset(actor: AdminActor = Depends(require_admin_audited)) -> dict:
    return {"success": True, "lastReset": admin_reset_service.get_last_reset()}
