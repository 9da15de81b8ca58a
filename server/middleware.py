"""HTTP middleware for request/response logging."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Slow request threshold in milliseconds
SLOW_REQUEST_THRESHOLD_MS = 1000

# Requests that wait on a human or stream events; never reported as slow
LONG_RUNNING_PATHS = ("/preflight/check", "/global/event")

# Polled by front ends; successful responses only logged at DEBUG
QUIET_PATHS = ("/health", "/preflight/pending")


def response_log_level(path: str, status: int, duration_ms: float) -> tuple[int, bool]:
    """
    Pick the log level for a finished request.

    Returns:
        (level, slow) where ``slow`` marks a request over the threshold
    """
    if status >= 500:
        return logging.ERROR, False
    if status >= 400:
        return logging.WARNING, False
    if duration_ms > SLOW_REQUEST_THRESHOLD_MS and not path.startswith(LONG_RUNNING_PATHS):
        return logging.WARNING, True
    if path in QUIET_PATHS:
        return logging.DEBUG, False
    return logging.INFO, False


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status and duration."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.perf_counter()
        logger.debug("%s %s", request.method, request.url.path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        level, slow = response_log_level(request.url.path, response.status_code, duration_ms)
        logger.log(
            level,
            "%s %s -> %d (%.1fms)%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            " SLOW" if slow else "",
        )
        return response
