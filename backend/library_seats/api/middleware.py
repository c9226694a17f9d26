"""
Request middleware: request id, acting user, timing and request metrics.

Every log line emitted while a request is handled carries request_id and,
when the gateway forwarded one, actor_id. Services log the reservation owner
as user_id, so the caller is kept under a separate key.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from library_seats.core.logging import get_logger
from library_seats.core.metrics import record_http_request
from library_seats.core.security import USER_ID_HEADER

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/metrics")


def gateway_user_id(request: Request):
    """The X-User-Id value as an int, or None when absent or malformed."""
    raw = request.headers.get(USER_ID_HEADER)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def route_template(request: Request) -> str:
    # /api/v1/reservations/{reservation_id} rather than one label per id
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        actor_id = gateway_user_id(request)
        if actor_id is not None:
            structlog.contextvars.bind_contextvars(actor_id=actor_id)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            record_http_request(request.method, route_template(request), 500)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        record_http_request(request.method, route_template(request), response.status_code)

        if request.url.path not in QUIET_PATHS:
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
