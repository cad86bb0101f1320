from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from backend.features.leaderboards.service import leaderboard_aggregator

router = APIRouter(prefix="/api/gamification")


@router.get("/leaderboards")
def get_leaderboards(month: Optional[str] = Query(None, description="YYYYMM, or all/combined/lifetime")):
    """Streak and mission rankings for a month, or combined when no month is given."""
    boards = leaderboard_aggregator.get_leaderboards(month)
    return {
        "success": True,
        "streakTop": [entry.to_dict() for entry in boards["streakTop"]],
        "missionTop": [entry.to_dict() for entry in boards["missionTop"]],
    }
