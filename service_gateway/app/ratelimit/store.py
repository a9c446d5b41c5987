"""
Keyed fixed-window counters backing the rate limiter.

A store exposes a single atomic operation, ``hit``: reset the bucket if its
window is over, increment it, and report the post-increment count. Counts
never go down inside a window.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis.asyncio as redis

from shared.logging import get_logger


@dataclass(frozen=True)
class BucketState:
    """Snapshot of a bucket right after a hit."""

    count: int
    reset_in_seconds: float


class RateLimitStore(ABC):
    """Atomic check-and-increment per key."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: float) -> BucketState:
        ...

    async def close(self) -> None:
        return None


@dataclass
class _Bucket:
    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now >= self.window_start + self.window_seconds


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store; one lock serializes every read-check-increment."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, reap_interval: float = 60.0):
        self._clock = clock
        self._reap_interval = reap_interval
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = asyncio.Lock()
        self._last_reap = clock()

    async def hit(self, key: str, window_seconds: float) -> BucketState:
        async with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or bucket.expired(now):
                bucket = _Bucket(count=0, window_start=now, window_seconds=window_seconds)
                self._buckets[key] = bucket
            bucket.count += 1
            self._reap(now)
            return BucketState(
                count=bucket.count,
                reset_in_seconds=max(0.0, bucket.window_start + window_seconds - now),
            )

    def __len__(self) -> int:
        return len(self._buckets)

    def _reap(self, now: float) -> None:
        if now - self._last_reap < self._reap_interval:
            return
        self._last_reap = now
        for key in [key for key, bucket in self._buckets.items() if bucket.expired(now)]:
            del self._buckets[key]


# INCR and the first-hit PEXPIRE run as one script so concurrent workers
# cannot observe a counter without its window.
_HIT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
return {count, ttl}
"""


class RedisRateLimitStore(RateLimitStore):
    """Shared store for multi-process deployments."""

    def __init__(self, redis_url: str, key_prefix: str = "rate_limit"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("gateway.rate_limit_store")
        self._redis: Optional[redis.Redis] = None
        self._script = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
            self._script = self._redis.register_script(_HIT_SCRIPT)
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def hit(self, key: str, window_seconds: float) -> BucketState:
        await self._get_redis()
        window_ms = max(1, int(window_seconds * 1000))
        count, ttl_ms = await self._script(keys=[self._make_key(key)], args=[window_ms])
        ttl_ms = int(ttl_ms)
        if ttl_ms < 0:
            ttl_ms = window_ms
        return BucketState(count=int(count), reset_in_seconds=ttl_ms / 1000)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
