import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from backend.core.logging import latency_bucket_ms, log_event, request_id_ctx_var

# Client ids are echoed into headers and logs; anything else gets a fresh id
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def accept_request_id(value) -> str:
    if value and _VALID_REQUEST_ID.match(value):
        return value
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate each request with an id and log one `request.complete` line."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = accept_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        status = response.status_code
        response.headers[self.header_name] = rid

        log_event(
            "warning" if status >= 500 else "info",
            "request.complete",
            request_id=rid,
            event_type="http",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
            },
        )
        return response
