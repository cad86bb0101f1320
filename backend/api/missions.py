from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.api.streaks import require_address
from backend.features.missions.service import mission_tracker

router = APIRouter(prefix="/api/gamification")


class ProofIn(BaseModel):
    txHash: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @field_validator("txHash")
    @classmethod
    def _trim(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class MissionTaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: Optional[str] = None
    task_id: str = Field(..., alias="taskId")
    proof: Optional[ProofIn] = None
    count: Optional[float] = None


@router.get("/missions")
def get_missions(address: Optional[str] = Query(None), day: Optional[str] = Query(None)):
    """Today's (or `day`'s) mission record for an address."""
    mission = mission_tracker.get_mission_day(require_address(address), day)
    return {"success": True, "day": mission.to_dict()}


@router.post("/missions")
def mark_mission_task(body: MissionTaskRequest):
    address = require_address(body.address)
    proof = body.proof.model_dump(exclude_none=True) if body.proof else None
    count = body.count if body.count is not None else 1
    updated = mission_tracker.apply_task(address, body.task_id, proof=proof, count=count)
    return {"success": True, "day": updated.to_dict()}


@router.get("/missions/score")
def get_mission_score(address: Optional[str] = Query(None), month: Optional[str] = Query(None)):
    score = mission_tracker.get_mission_score(require_address(address), month)
    return {"success": True, "score": score}
