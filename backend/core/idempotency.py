"""
backend/core/idempotency.py
Idempotency markers for reward issuance.

A marker is a key written with set-if-absent: the first writer for a given
(address, reward_id) wins and every later attempt sees a duplicate.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from backend.core import keys
from backend.core.store import KeyValueStore


def check_and_set(store: KeyValueStore, address: str, reward_id: str, metadata: Optional[dict] = None) -> bool:
    """
    Check if the reward marker exists, and set it if not (atomic).

    Args:
        store: Key-value store holding the markers
        address: Wallet address the reward belongs to
        reward_id: Logical event id (e.g. "day_complete:2025-01-01")
        metadata: Optional details stored alongside the marker

    Returns:
        True if the marker was already present (duplicate)
        False if this call created it (first time)
    """
    marker = {"at": int(datetime.now(timezone.utc).timestamp() * 1000)}
    if metadata:
        marker.update(metadata)
    created = store.set_if_absent(
        keys.idempotency(address, reward_id),
        json.dumps(marker, separators=(",", ":"), default=str),
    )
    return not created
