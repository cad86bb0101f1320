from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from backend.core import keys
from backend.core.config import settings
from backend.core.errors import ValidationError
from backend.core.store import KeyValueStore, get_store
from backend.models.leaderboard import LeaderboardEntry, rank
from backend.models.mission import decode_json_object
from backend.models.streak import StreakRecord

logger = logging.getLogger("gm")

_STREAK_KEY_HEAD = f"{keys.NAMESPACE}streak:"


def resolve_month(month: Optional[str]) -> Optional[str]:
    """YYYYMM for a concrete month, None for the combined view.

    An empty month means combined; aliases are all/combined/lifetime.
    """
    if keys.is_combined_month(month):
        return None
    candidate = month.strip()
    if not keys.is_valid_month(candidate):
        raise ValidationError(f"Invalid month '{month}': expected YYYYMM or one of all/combined/lifetime")
    return candidate


class LeaderboardAggregator:
    """Monthly and combined rankings derived from per-period structures.

    Combined views are recomputed on each read: mission points are summed
    across every monthly board, streaks use each record's `best`.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        top_n: Optional[int] = None,
    ):
        self._store = store
        self._top_n = top_n

    @property
    def store(self) -> KeyValueStore:
        return self._store or get_store()

    @property
    def top_n(self) -> int:
        return self._top_n or settings.LEADERBOARD_TOP_N

    def get_leaderboards(self, month: Optional[str] = None) -> Dict[str, List[LeaderboardEntry]]:
        target = resolve_month(month)
        if target is None:
            return {
                "streakTop": self.combined_streak_leaderboard(),
                "missionTop": self.combined_mission_leaderboard(),
            }
        return {
            "streakTop": self.monthly_leaderboard(keys.streak_leaderboard(target)),
            "missionTop": self.monthly_leaderboard(keys.missions_leaderboard(target)),
        }

    def monthly_leaderboard(self, key: str) -> List[LeaderboardEntry]:
        rows = self.store.zrevrange_with_scores(key, 0, self.top_n)
        return [LeaderboardEntry(address=member, value=score) for member, score in rows]

    def combined_mission_leaderboard(self) -> List[LeaderboardEntry]:
        totals: Dict[str, float] = defaultdict(float)
        for board_key in self.store.scan_keys(keys.MISSIONS_LEADERBOARD_PATTERN):
            try:
                rows = self.store.zrange_all_with_scores(board_key)
            except Exception:
                logger.warning("gm.leaderboard.board_unreadable", exc_info=True, extra={"key": board_key})
                continue
            for member, score in rows:
                if not member:
                    continue
                totals[member.lower()] += score
        return rank(totals, self.top_n)

    def combined_streak_leaderboard(self) -> List[LeaderboardEntry]:
        best: Dict[str, float] = {}
        for record_key in self.store.scan_keys(keys.STREAK_RECORD_PATTERN):
            if not record_key.startswith(_STREAK_KEY_HEAD):
                continue
            address = record_key[len(_STREAK_KEY_HEAD):].lower()
            if not address.startswith("0x") or ":" in address:
                continue
            try:
                data = decode_json_object(self.store.get(record_key))
            except Exception:
                logger.warning("gm.leaderboard.streak_unreadable", exc_info=True, extra={"key": record_key})
                continue
            if data is None:
                continue
            record = StreakRecord.from_dict(address, data)
            if record.best > 0:
                best[address] = record.best
        return rank(best, self.top_n)


leaderboard_aggregator = LeaderboardAggregator()
