"""
Inbound Request Rate Limiting

Sliding-window limiter applied to every /api route, keyed by client IP.
Health and docs endpoints are never limited.

Usage in main.py:
    app.add_middleware(
        RequestRateLimitMiddleware,
        limit=settings.inbound_rate_limit,
        window_s=settings.rate_limit_window_s,
    )
"""

import logging
import math
import time
from collections import deque
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

LIMITED_PREFIX = "/api"


class SlidingWindowLimiter:
    """In-memory sliding window of request times per key."""

    def __init__(self, limit: int, window_s: float, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        self._requests: dict[str, deque] = {}

    def hit(self, key: str) -> tuple[bool, int, int]:
        """
        Record one request for `key` if the window has room.

        Returns:
            (allowed, remaining, seconds until the oldest request leaves the window)
        """
        now = self._clock()
        window_start = now - self.window_s

        times = self._requests.setdefault(key, deque())
        while times and times[0] <= window_start:
            times.popleft()

        allowed = len(times) < self.limit
        if allowed:
            times.append(now)

        reset = math.ceil(times[0] + self.window_s - now) if times else 0
        return allowed, max(0, self.limit - len(times)), max(0, reset)


class RequestRateLimitMiddleware(BaseHTTPMiddleware):
    """Reject /api requests over `limit` per `window_s` with HTTP 429."""

    def __init__(
        self,
        app,
        limit: int,
        window_s: float,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.enabled = enabled
        self.limiter = SlidingWindowLimiter(limit, window_s, clock)

    def _client_key(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or not request.url.path.startswith(LIMITED_PREFIX):
            return await call_next(request)

        client = self._client_key(request)
        allowed, remaining, reset = self.limiter.hit(client)
        headers = {
            "RateLimit-Limit": str(self.limiter.limit),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(reset),
        }

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {client} on {request.url.path} "
                f"({self.limiter.limit}/{self.limiter.window_s:.0f}s)"
            )
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later."},
                headers={**headers, "Retry-After": str(reset)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

