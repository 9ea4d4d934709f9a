"""
Keystone — Request Logging Middleware
=======================================

What:  Logs each handled request with its duration.
Who:   Installed by create_app() in the development environment only.

Log line:
    --- 响应：GET -> /api/health +3ms
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("keystone.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug-level `method -> url +Nms` line once the response is ready."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        content = f"{request.method} -> {request.url.path}"
        if request.url.query:
            content = f"{content}?{request.url.query}"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "--- 响应：%s +%dms",
            content,
            duration_ms,
            extra={
                "context": "LoggingInterceptor",
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
