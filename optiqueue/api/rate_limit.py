"""
Per-client rate limiting for upload endpoints.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from optiqueue.config import get_settings
from optiqueue.constants import API_V1_PREFIX
from optiqueue.types.api import ErrorResponse

# Only uploads consume tokens; polling and downloads are free
RATE_LIMITED_PATHS = frozenset({f"{API_V1_PREFIX}/jobs", f"{API_V1_PREFIX}/jobs/batch"})


@dataclass
class TokenBucket:
    """
    Token bucket for rate limiting.

    Refills continuously at ``refill_rate`` tokens per second up to ``capacity``.
    """

    capacity: float
    tokens: float
    refill_rate: float
    last_refill: float

    def consume(self, tokens: float = 1.0) -> bool:
        """
        Try to consume tokens from the bucket.

        Args:
            tokens: Number of tokens to consume.

        Returns:
            True if tokens were consumed, False if rate limited.
        """
        now = time.monotonic()

        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True

        return False

    @property
    def wait_time(self) -> float:
        """Time in seconds until at least 1 token is available."""
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_rate


class RateLimiter:
    """
    In-memory rate limiter keyed by client address.
    """

    def __init__(
        self,
        requests_per_minute: int = 100,
        burst_capacity: int | None = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            requests_per_minute: Sustained requests per minute per client.
            burst_capacity: Maximum burst size. Defaults to the per-minute rate.
        """
        self._refill_rate = requests_per_minute / 60.0
        self._capacity = burst_capacity or requests_per_minute
        self._buckets: dict[str, TokenBucket] = {}
        # A bucket untouched this long has refilled completely
        self._idle_after = self._capacity / self._refill_rate
        self._last_sweep = time.monotonic()

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def evict_idle(self, now: float | None = None) -> int:
        """
        Drop buckets of clients that have been idle long enough to refill.

        A fresh bucket is created on their next request, so no limit is lost.

        Args:
            now: Monotonic timestamp to measure idleness against.

        Returns:
            Number of buckets dropped.
        """
        now = time.monotonic() if now is None else now
        idle = [
            key for key, bucket in self._buckets.items()
            if now - bucket.last_refill >= self._idle_after
        ]
        for key in idle:
            del self._buckets[key]

        self._last_sweep = now
        return len(idle)

    def _bucket(self, key: str) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(
                capacity=self._capacity,
                tokens=self._capacity,
                refill_rate=self._refill_rate,
                last_refill=time.monotonic(),
            )
            self._buckets[key] = bucket
        return bucket

    def check(self, key: str, tokens: float = 1.0) -> tuple[bool, float]:
        """
        Check if a request is allowed.

        Args:
            key: Rate limit key, usually the client address.
            tokens: Number of tokens to consume.

        Returns:
            Tuple of (allowed, wait_time_seconds).
        """
        if time.monotonic() - self._last_sweep >= self._idle_after:
            self.evict_idle()

        bucket = self._bucket(key)
        allowed = bucket.consume(tokens)
        return allowed, bucket.wait_time

    def reset(self, key: str | None = None) -> None:
        """Reset one key, or every key when none is given."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            requests_per_minute=settings.rate_limit_requests_per_minute
        )
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Drop the global rate limiter so the next request rebuilds it from settings."""
    global _rate_limiter
    _rate_limiter = None


def client_key(request: Request) -> str:
    """Identify the client, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def rate_limit_dependency(request: Request) -> None:
    """
    Consume one token for the calling client.

    Raises:
        HTTPException: 429 if the client is over its limit.
    """
    limiter = get_rate_limiter()
    allowed, wait_time = limiter.check(client_key(request))

    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Retry after {wait_time:.1f} seconds",
            headers={"Retry-After": str(int(wait_time) + 1)},
        )


def create_rate_limit_middleware() -> Callable:
    """
    Create rate limiting middleware for FastAPI.

    Returns:
        The middleware function.
    """

    async def rate_limit_middleware(request: Request, call_next: Callable):
        """Apply rate limiting to upload requests."""
        if request.method != "POST" or request.url.path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        try:
            rate_limit_dependency(request)
        except HTTPException as e:
            return JSONResponse(
                status_code=e.status_code,
                content=ErrorResponse(error=e.detail).model_dump(exclude_none=True),
                headers=e.headers,
            )

        return await call_next(request)

    return rate_limit_middleware
