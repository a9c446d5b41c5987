"""
Rate limiting package for the Gateway.

Holds the tier table, the limiter that enforces per-identity request budgets
and the pluggable counter stores (in-process and Redis).
"""

from .limiter import KeyStrategy, RateLimiter, RateLimitResult, RateLimitTier, default_tiers
from .store import BucketState, InMemoryRateLimitStore, RateLimitStore, RedisRateLimitStore

__all__ = [
    "BucketState",
    "InMemoryRateLimitStore",
    "KeyStrategy",
    "RateLimitResult",
    "RateLimitStore",
    "RateLimitTier",
    "RateLimiter",
    "RedisRateLimitStore",
    "default_tiers",
]
