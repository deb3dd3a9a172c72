"""Access logging for portal requests"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from curbside.config import settings

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 5.0

# Probes hit every few seconds; keep them out of the info stream
QUIET_PREFIXES = ("/health",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per completed request, tagged with who made it"""

    def __init__(self, app, log_requests: bool = True, log_responses: bool = True):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses

    def _audience(self, request: Request) -> str:
        if request.url.path.startswith("/api/admin"):
            return "operator"
        if request.headers.get(settings.identity_header):
            return "resident"
        return "anonymous"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        path = request.url.path
        level = logging.DEBUG if path.startswith(QUIET_PREFIXES) else logging.INFO
        context = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": path,
            "audience": self._audience(request),
            "user_id": request.headers.get(settings.identity_header),
        }

        if self.log_requests:
            logger.log(level, f"{request.method} {path}", extra=context)

        response: Response = await call_next(request)
        elapsed = round(time.perf_counter() - started, 4)

        if self.log_responses:
            logger.log(
                level,
                f"{request.method} {path} -> {response.status_code}",
                extra={**context, "status_code": response.status_code, "process_time": elapsed},
            )
        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow request {request.method} {path}: {elapsed}s", extra=context)

        response.headers["X-Process-Time"] = str(elapsed)
        return response
