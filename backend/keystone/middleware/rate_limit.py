"""
Keystone — Rate Limiting Middleware
=====================================

What:  Per-client, per-route fixed window rate limiter.
How:   Each (client, method, route) pair owns a window: the client is the
       peer address after proxy rewriting and the route is the path template
       of the matched endpoint, so /api/health and /api/ are limited
       separately. Requests that match no route are not counted.
       A window starts at the first request and lasts `window` seconds. Up
       to `limit` requests pass inside it; the next ones get a 429 with a
       localized message until the window expires and the counter resets.
Who:   Applied to every request via Starlette middleware.

Algorithm: Fixed Window Counter
    1. Look up (window_start, count) for the client and route
    2. If now - window_start >= window: start a new window with count 0
    3. If count >= limit: reject, Retry-After = seconds left in the window
    4. Otherwise count += 1 and let the request through

    Defaults: 5 requests per 10 seconds.

Limitations:
    Counters live in this process only. With several workers each one keeps
    its own counters.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Match
from starlette.types import ASGIApp

from keystone.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_WINDOW = 10.0

THROTTLE_MESSAGES = {
    "zh-CN": "当前操作过于频繁，请稍后再试！",
    "en-US": "Too many requests, please try again later.",
}


def throttle_message(locale: str) -> str:
    """Rejection message for `locale`, matched on the language when needed."""
    if locale in THROTTLE_MESSAGES:
        return THROTTLE_MESSAGES[locale]
    language = locale.split("-")[0].lower()
    for key, message in THROTTLE_MESSAGES.items():
        if key.split("-")[0].lower() == language:
            return message
    return THROTTLE_MESSAGES["en-US"]


@dataclass(frozen=True)
class WindowState:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class FixedWindowCounter:
    """
    In-memory fixed window counters keyed by client and route.

    Args:
        limit:   Requests allowed per window
        window:  Window length in seconds
        clock:   Monotonic time source (injectable for tests)
    """

    CLEANUP_EVERY = 1000

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window: float = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: Dict[Hashable, Tuple[float, int]] = {}
        self._hits = 0

    def hit(self, key: Hashable) -> WindowState:
        now = self._clock()
        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window:
            start, count = now, 0

        if count >= self.limit:
            retry_after = max(1, math.ceil(start + self.window - now))
            return WindowState(False, self.limit, 0, retry_after)

        count += 1
        self._windows[key] = (start, count)

        self._hits += 1
        if self._hits % self.CLEANUP_EVERY == 0:
            self.purge_expired(now)

        retry_after = max(1, math.ceil(start + self.window - now))
        return WindowState(True, self.limit, self.limit - count, retry_after)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Drop windows that have already ended; returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [
            key for key, (start, _) in self._windows.items()
            if now - start >= self.window
        ]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Cleaned up %d expired rate-limit windows", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


def client_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def matched_route(request: Request) -> Optional[str]:
    """Path template of the route that will handle `request`, if any."""
    router = getattr(request.scope.get("app"), "router", None)
    for route in getattr(router, "routes", ()):
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", None)
    return None


def rate_limit_response(exc: RateLimitExceededError, limit: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": exc.message,
            "details": exc.context,
        },
        headers={
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": "0",
        },
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests beyond the fixed window limit with HTTP 429.

    Args:
        limit, window:  Window configuration (5 requests / 10 seconds)
        locale:         Locale of the rejection message (app.locale)
        exempt_paths:   Paths never counted (documentation UI and JSON)
        counter:        Pre-built counter, mostly for tests
    """

    def __init__(
        self,
        app: ASGIApp,
        limit: int = DEFAULT_LIMIT,
        window: float = DEFAULT_WINDOW,
        locale: str = "zh-CN",
        exempt_paths: Iterable[str] = (),
        counter: Optional[FixedWindowCounter] = None,
    ):
        super().__init__(app)
        self.counter = counter or FixedWindowCounter(limit=limit, window=window)
        self.message = throttle_message(locale)
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        route = matched_route(request)
        if route is None:
            return await call_next(request)

        client = client_identity(request)
        state = self.counter.hit((client, request.method, route))

        if not state.allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s %s: %d requests in %.0fs window",
                client,
                request.method,
                route,
                self.counter.limit,
                self.counter.window,
            )
            exc = RateLimitExceededError(retry_after=state.retry_after, message=self.message)
            return rate_limit_response(exc, state.limit)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(state.limit)
        response.headers["X-RateLimit-Remaining"] = str(state.remaining)
        return response
