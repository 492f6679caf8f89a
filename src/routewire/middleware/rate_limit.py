"""
=============================================================================
RATE LIMITING MIDDLEWARE
=============================================================================

Per-client token buckets. Each client key (the resolved client IP by
default) owns a bucket that holds up to burst_size tokens and refills at
requests_per_second.

    t=0.0  bucket 3/3   GET → 200  (2 left)
    t=0.0  bucket 2/3   GET → 200  (1 left)
    t=0.0  bucket 1/3   GET → 200  (0 left)
    t=0.0  bucket 0/3   GET → 429  Retry-After: 1
    t=1.0  bucket 1/3   GET → 200  (refilled at 1 token/s)

Every response carries:

    X-RateLimit-Limit        bucket capacity
    X-RateLimit-Remaining    whole tokens left after this request

and a rejected one adds Retry-After and X-RateLimit-Reset (epoch seconds).

The bucket table is shared by worker threads and guarded by its own lock.
Buckets idle longer than bucket_ttl are dropped on a periodic sweep.

=============================================================================
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..http.request import Request
from ..http.response import Response
from ..http.status_codes import HTTPStatus
from .base import Middleware, NextHandler

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """
    Token bucket. Not thread-safe on its own; RateLimitMiddleware holds
    its lock around every call.
    """

    max_tokens: float
    tokens_per_second: float
    tokens: float
    last_update: float

    @classmethod
    def full(cls, max_tokens: float, tokens_per_second: float, now: float) -> "TokenBucket":
        return cls(max_tokens, tokens_per_second, float(max_tokens), now)

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_update)
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.tokens_per_second)
        self.last_update = now

    def consume(self, now: float, tokens: float = 1.0) -> bool:
        """Take tokens if available. False means the request is rejected."""
        self.refill(now)
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def time_until_available(self, now: float, tokens: float = 1.0) -> float:
        self.refill(now)
        if self.tokens >= tokens:
            return 0.0
        if self.tokens_per_second <= 0:
            return math.inf
        return (tokens - self.tokens) / self.tokens_per_second


class RateLimitMiddleware(Middleware):
    """
    Reject clients that exceed their token bucket with 429.

        app.use(RateLimitMiddleware(requests_per_second=5, burst_size=10))

        # limit by API key instead of address
        app.use(RateLimitMiddleware(key_func=lambda req: req.get_header("X-API-Key")))
    """

    def __init__(
        self,
        requests_per_second: float = 10.0,
        burst_size: int = 20,
        key_func: Optional[Callable[[Request], str]] = None,
        cleanup_interval: float = 60.0,
        bucket_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_second <= 0 or burst_size <= 0:
            raise ValueError("requests_per_second and burst_size must be positive")
        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self.key_func = key_func or self._client_key
        self.cleanup_interval = cleanup_interval
        self.bucket_ttl = bucket_ttl
        self._clock = clock

        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    @staticmethod
    def _client_key(request: Request) -> str:
        return request.ip or request.remote_address

    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        key = self.key_func(request)

        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket.full(self.burst_size, self.requests_per_second, now)
                self._buckets[key] = bucket
            allowed = bucket.consume(now)
            remaining = int(bucket.tokens)
            retry_after = 0 if allowed else math.ceil(bucket.time_until_available(now))

        if allowed:
            next(request, response)
            response.rate_limit(self.burst_size, remaining)
            return

        logger.warning("Rate limit exceeded for %s on %s %s", key, request.method, request.path)
        response.error(
            HTTPStatus.TOO_MANY_REQUESTS,
            f"Rate limit exceeded. Try again in {retry_after} seconds.",
        )
        response.set("Retry-After", retry_after)
        response.rate_limit(self.burst_size, 0, reset=int(time.time()) + retry_after)

    def _maybe_cleanup(self, now: float) -> None:
        """Drop idle buckets. Caller holds the lock."""
        if now - self._last_cleanup < self.cleanup_interval:
            return
        stale = [key for key, bucket in self._buckets.items() if now - bucket.last_update > self.bucket_ttl]
        for key in stale:
            del self._buckets[key]
        self._last_cleanup = now
        if stale:
            logger.debug("Dropped %d idle rate-limit buckets", len(stale))

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._buckets)
