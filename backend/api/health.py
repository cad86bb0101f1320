"""
Health and diagnostics API.

Provides lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from backend.core.logging import latency_bucket_ms, get_request_id
from backend.core.store import get_store

logger = logging.getLogger("gm")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Readiness check: key-value store reachable."""
    start = time.perf_counter()
    try:
        get_store().ping()
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "store unreachable"})

    logger.info(
        "health.store",
        extra={
            "request_id": get_request_id(),
            "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
        },
    )
    return {"status": "ok"}
