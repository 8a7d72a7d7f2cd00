"""
Unit tests for rate limiting.
"""

import time

import pytest
from starlette.requests import Request

from optiqueue.api.rate_limit import RateLimiter, TokenBucket, client_key


def make_request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.1", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/v1/jobs",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestTokenBucket:
    """Tests for TokenBucket."""

    def test_consume_success(self):
        """Test successful token consumption."""
        bucket = TokenBucket(
            capacity=10,
            tokens=10,
            refill_rate=1.0,
            last_refill=time.monotonic(),
        )

        assert bucket.consume(1) is True
        assert bucket.tokens == pytest.approx(9, abs=0.01)

    def test_consume_empty_bucket(self):
        """Test consumption from empty bucket."""
        bucket = TokenBucket(
            capacity=10,
            tokens=0,
            refill_rate=1.0,
            last_refill=time.monotonic(),
        )

        assert bucket.consume(1) is False

    def test_refill_over_time(self):
        """Test token refill based on time."""
        bucket = TokenBucket(
            capacity=10,
            tokens=0,
            refill_rate=10.0,
            last_refill=time.monotonic() - 1,
        )

        assert bucket.consume(5) is True
        assert bucket.tokens >= 5

    def test_capacity_limit(self):
        """Test that tokens don't exceed capacity."""
        bucket = TokenBucket(
            capacity=10,
            tokens=10,
            refill_rate=100.0,
            last_refill=time.monotonic() - 10,
        )

        bucket.consume(1)

        assert bucket.tokens <= 10

    def test_wait_time(self):
        """Test wait time calculation."""
        bucket = TokenBucket(
            capacity=10,
            tokens=0.5,
            refill_rate=1.0,
            last_refill=time.monotonic(),
        )

        assert bucket.wait_time == pytest.approx(0.5, rel=0.1)


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_check_allowed(self):
        """Test request is allowed when under limit."""
        limiter = RateLimiter(requests_per_minute=60)

        allowed, wait_time = limiter.check("10.0.0.1")

        assert allowed is True
        assert wait_time == 0

    def test_check_rate_limited(self):
        """Test request is blocked when over limit."""
        limiter = RateLimiter(requests_per_minute=1, burst_capacity=1)

        allowed1, _ = limiter.check("10.0.0.1")
        assert allowed1 is True

        allowed2, wait_time = limiter.check("10.0.0.1")
        assert allowed2 is False
        assert wait_time > 0

    def test_per_client_limits(self):
        """Test that rate limits are per client."""
        limiter = RateLimiter(requests_per_minute=1, burst_capacity=1)

        limiter.check("10.0.0.1")

        allowed, _ = limiter.check("10.0.0.2")
        assert allowed is True

    def test_reset(self):
        """Test resetting rate limit for one key and for all keys."""
        limiter = RateLimiter(requests_per_minute=1, burst_capacity=1)

        limiter.check("10.0.0.1")
        limiter.check("10.0.0.2")
        allowed, _ = limiter.check("10.0.0.1")
        assert allowed is False

        limiter.reset("10.0.0.1")
        allowed, _ = limiter.check("10.0.0.1")
        assert allowed is True

        limiter.reset()
        allowed, _ = limiter.check("10.0.0.2")
        assert allowed is True

    def test_evict_idle(self):
        """Test buckets are dropped once their client has been idle long enough to refill."""
        limiter = RateLimiter(requests_per_minute=60)

        limiter.check("10.0.0.1")
        limiter.check("10.0.0.2")
        assert limiter.bucket_count == 2

        assert limiter.evict_idle(now=time.monotonic() + 30) == 0
        assert limiter.bucket_count == 2

        assert limiter.evict_idle(now=time.monotonic() + 61) == 2
        assert limiter.bucket_count == 0

    def test_check_sweeps_idle_buckets(self):
        """Test checking a new client clears out idle ones."""
        limiter = RateLimiter(requests_per_minute=6000, burst_capacity=1)

        limiter.check("10.0.0.1")
        time.sleep(0.02)
        limiter.check("10.0.0.2")

        assert limiter.bucket_count == 1


class TestClientKey:
    """Tests for client identification."""

    def test_uses_peer_address(self):
        assert client_key(make_request()) == "10.0.0.1"

    def test_prefers_forwarded_for(self):
        request = make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert client_key(request) == "203.0.113.7"

    def test_unknown_client(self):
        assert client_key(make_request(client=None)) == "unknown"
