from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Union


@dataclass
class LeaderboardEntry:
    """Derived ranking row; never stored on its own."""

    address: str
    value: Union[int, float]

    def to_dict(self) -> dict:
        value = int(self.value) if float(self.value).is_integer() else self.value
        return {"address": self.address, "value": value}


def rank(totals: Dict[str, float], limit: int) -> List[LeaderboardEntry]:
    """Descending by value, ties by address, truncated to `limit`."""
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [LeaderboardEntry(address=address, value=value) for address, value in ordered[:limit]]
