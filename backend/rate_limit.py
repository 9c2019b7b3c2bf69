# rate_limit.py - Sliding-window request throttling
# One limiter class serves both the per-client API limit and the login lockout.
# State is per process (in memory), like the memory storage backend.

import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from errors import RateLimitError
from logging_system import StructuredLogger
from responses import error_response


@dataclass
class RateLimitState:
    allowed: bool
    limit: int
    remaining: int
    retry_after: float


class SlidingWindowRateLimiter:
    """At most ``max_requests`` hits per key within any ``window_seconds`` span."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def _sweep(self, now: float) -> None:
        # Keys that never come back are dropped once per window
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._prune(key, now)

    def tracked_keys(self) -> int:
        """Number of keys with hits inside the current window."""
        return len(self._hits)

    def check(self, key: str) -> RateLimitState:
        """Current state for ``key`` without recording a hit."""
        now = self.clock()
        hits = self._prune(key, now)
        remaining = max(self.max_requests - len(hits), 0)
        retry_after = 0.0
        if remaining == 0 and hits:
            retry_after = max(hits[0] + self.window_seconds - now, 0.0)
        return RateLimitState(remaining > 0, self.max_requests, remaining, retry_after)

    def record(self, key: str) -> None:
        now = self.clock()
        self._sweep(now)
        self._hits.setdefault(key, deque()).append(now)

    def hit(self, key: str) -> RateLimitState:
        """Record a hit if the key is under its limit."""
        state = self.check(key)
        if state.allowed:
            self.record(key)
            state.remaining -= 1
        return state

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)


def retry_after_header(seconds: float) -> str:
    return str(max(int(math.ceil(seconds)), 1))


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle ``/api`` requests per client address; the health probe is exempt."""

    def __init__(self, app, limiter: SlidingWindowRateLimiter, logger: StructuredLogger, prefix: str = "/api",
                 exempt: tuple = ("/api/health",)):
        super().__init__(app)
        self.limiter = limiter
        self.logger = logger
        self.prefix = prefix
        self.exempt = exempt

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(self.prefix) or path in self.exempt or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key(request)
        state = self.limiter.hit(key)
        headers = {
            "X-RateLimit-Limit": str(state.limit),
            "X-RateLimit-Remaining": str(state.remaining),
        }
        if not state.allowed:
            headers["Retry-After"] = retry_after_header(state.retry_after)
            self.logger.security_event("rate_limited", metadata={"client": key, "path": path})
            error = RateLimitError("Too many requests, please try again later", retry_after=state.retry_after)
            return error_response(
                error.status_code,
                error.to_error(),
                getattr(request.state, "request_id", None),
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
