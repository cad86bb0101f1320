from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Optional

from backend.core.keys import parse_day


@dataclass
class StreakRecord:
    """
    Per-address consecutive-day activity streak. Day-level, UTC only, no direct store concerns.
    """

    address: str
    current: int = 0
    best: int = 0
    last_active_day: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "current": self.current,
            "best": self.best,
            "lastActive": self.last_active_day.isoformat() if self.last_active_day else "",
        }

    def to_json(self) -> str:
        data = self.to_dict()
        data.pop("address")
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def from_dict(cls, address: str, data: dict) -> "StreakRecord":
        current = _non_negative_int(data.get("current"))
        best = max(_non_negative_int(data.get("best")), current)
        return cls(
            address=address,
            current=current,
            best=best,
            last_active_day=parse_day(data.get("lastActive")),
        )


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if value != value or value in (float("inf"), float("-inf")):
        return 0
    return max(0, int(value))
