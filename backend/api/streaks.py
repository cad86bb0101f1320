from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from backend.core import keys
from backend.core.errors import ValidationError
from backend.features.streaks.service import streak_tracker

router = APIRouter(prefix="/api/gamification")


class TrackActivityRequest(BaseModel):
    address: Optional[str] = None


def require_address(address: Optional[str]) -> str:
    if not keys.is_valid_address(address):
        raise ValidationError("Valid wallet address is required")
    return keys.normalize_address(address)


@router.get("/streak")
def get_streak(address: Optional[str] = Query(None)):
    """Return the current (missed-day normalized) streak for an address."""
    record = streak_tracker.get_streak(require_address(address))
    return {"success": True, "streak": record.to_dict()}


@router.post("/streak")
def track_activity(body: TrackActivityRequest):
    record = streak_tracker.track_daily_activity(require_address(body.address))
    return {"success": True, "streak": record.to_dict()}
