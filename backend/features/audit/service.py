import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional
from datetime import datetime, timezone

from backend.core.config import settings
from backend.core.logging import get_request_id

logger = logging.getLogger("gm")

_MAX_BUFFERED_EVENTS = 1000
_memory_events: Deque[Dict[str, Any]] = deque(maxlen=_MAX_BUFFERED_EVENTS)


def _safe_truncate(value: Any, limit: int = 500):
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    if len(text) <= limit:
        return text
    return text[:limit] + "...<truncated>"


def record_audit_event(
    *,
    action: str,
    user_id: Optional[str],
    request_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip: Optional[str] = None,
    success: bool = True,
):
    """Record an audit event to the log stream and the in-process buffer.

    Notes:
    - Respects AUDIT_ENABLED.
    - Never logs secrets; metadata is truncated.
    """

    if not settings.AUDIT_ENABLED:
        return

    safe_metadata = None
    if metadata:
        safe_metadata = {k: _safe_truncate(v) for k, v in metadata.items()}

    record = {
        "ts": datetime.now(timezone.utc),
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "action": action,
        "success": success,
        "metadata": safe_metadata,
        "ip": ip,
    }
    _memory_events.append(record)
    logger.log(
        logging.INFO if success else logging.WARNING,
        "audit.event",
        extra={
            "request_id": record["request_id"],
            "action": action,
            "user_id": user_id,
            "success": success,
            "audit_metadata": safe_metadata,
        },
    )


def get_buffered_audit_events() -> List[Dict[str, Any]]:
    return list(_memory_events)


def clear_buffered_audit_events() -> None:
    _memory_events.clear()
