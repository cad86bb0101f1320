"""Key shapes and UTC calendar helpers for gamification state.

Every key lives under the "gm:" namespace; the store adapter adds the
application-wide STORE_KEY_PREFIX on top.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

NAMESPACE = "gm:"

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
MONTH_RE = re.compile(r"^\d{4}(0[1-9]|1[0-2])$")
COMBINED_MONTH_ALIASES = {"all", "combined", "lifetime"}


def normalize_address(address: str) -> str:
    return address.strip().lower()


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address.strip()))


def streak(address: str) -> str:
    return f"{NAMESPACE}streak:{normalize_address(address)}"


def streak_leaderboard(yyyymm: str) -> str:
    return f"{NAMESPACE}streak:leaderboard:{yyyymm}"


def streak_activity(day: str) -> str:
    return f"{NAMESPACE}streak:activity:{day}"


def missions(address: str, day: str) -> str:
    return f"{NAMESPACE}missions:{normalize_address(address)}:{day}"


def missions_leaderboard(yyyymm: str) -> str:
    return f"{NAMESPACE}missions:leaderboard:{yyyymm}"


def proof(address: str, day: str, task_id: str) -> str:
    return f"{NAMESPACE}missions:proof:{normalize_address(address)}:{day}:{task_id}"


def idempotency(address: str, reward_id: str) -> str:
    return f"{NAMESPACE}idemp:{normalize_address(address)}:{reward_id}"


ADMIN_LAST_RESET = f"{NAMESPACE}admin:lastResetAt"

STREAK_RECORD_PATTERN = f"{NAMESPACE}streak:0x*"
MISSIONS_LEADERBOARD_PATTERN = f"{NAMESPACE}missions:leaderboard:*"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_of(moment: datetime) -> date:
    aware = moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).date()


def day_str(day: date) -> str:
    return day.isoformat()


def parse_day(value: object) -> Optional[date]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def to_month(day: date | str) -> str:
    """YYYY-MM-DD (or a date) -> YYYYMM."""
    text = day.isoformat() if isinstance(day, date) else day
    return text.replace("-", "")[:6]


def is_combined_month(month: Optional[str]) -> bool:
    if not month:
        return True
    return month.strip().lower() in COMBINED_MONTH_ALIASES


def is_valid_month(month: str) -> bool:
    return bool(MONTH_RE.match(month.strip()))
