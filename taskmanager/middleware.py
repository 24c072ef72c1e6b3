import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from taskmanager.utils.responses import failure

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("taskmanager.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float


class FixedWindowRateLimiter:
    """Counts hits per key in fixed windows; excess hits are rejected, not queued."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        # at most once per window; caller holds the lock
        if now - self._last_sweep < self.window_seconds:
            return
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]
        self._last_sweep = now

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
        reset_after = max(0.0, self.window_seconds - (now - started))
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=reset_after,
        )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


@dataclass
class RateLimits:
    general: FixedWindowRateLimiter
    auth: FixedWindowRateLimiter
    auth_prefix: str = "/api/auth"

    def limiters_for(self, path: str):
        yield self.general
        if path.startswith(self.auth_prefix):
            yield self.auth


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the limiters stored on ``app.state.rate_limits`` ahead of routing."""

    async def dispatch(self, request: Request, call_next):
        limits: Optional[RateLimits] = getattr(request.app.state, "rate_limits", None)
        if limits is None:
            return await call_next(request)

        key = client_key(request)
        tightest = None
        for limiter in limits.limiters_for(request.url.path):
            result = limiter.hit(key)
            if not result.allowed:
                logger.warning("rate limit exceeded for %s on %s", key, request.url.path)
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content=failure("Too many requests from this IP, please try again later."),
                    headers={
                        "Retry-After": str(math.ceil(result.reset_after)),
                        "X-RateLimit-Limit": str(result.limit),
                        "X-RateLimit-Remaining": "0",
                    },
                )
            if tightest is None or result.remaining < tightest.remaining:
                tightest = result

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(tightest.limit)
        response.headers["X-RateLimit-Remaining"] = str(tightest.remaining)
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log(access_logger.error, request, 500, started)
            raise
        self._log(access_logger.info, request, response.status_code, started)
        return response

    @staticmethod
    def _log(emit, request: Request, status_code: int, started: float) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        emit(
            '%s "%s %s" %s %.1fms',
            client_key(request),
            request.method,
            request.url.path,
            status_code,
            elapsed_ms,
        )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response
