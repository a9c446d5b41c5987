"""
Tiered rate limiting for the Gateway.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from shared.config import BaseConfig
from shared.errors import RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .store import RateLimitStore


class KeyStrategy(str, Enum):
    """What identifies a caller for a tier."""

    ADDRESS = "address"
    IDENTITY = "identity"


@dataclass(frozen=True)
class RateLimitTier:
    name: str
    max_requests: int
    window_minutes: int
    key_strategy: KeyStrategy = KeyStrategy.ADDRESS
    message: str = "Too many requests, please try again later"

    @property
    def window_seconds(self) -> int:
        return self.window_minutes * 60


@dataclass(frozen=True)
class RateLimitResult:
    tier: str
    limit: int
    count: int
    window_minutes: int
    reset_in_seconds: float

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def headers(self) -> Dict[str, str]:
        """Standard rate limit headers for the response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_in_seconds)),
        }


def default_tiers(config: BaseConfig) -> Dict[str, RateLimitTier]:
    """Tier table derived from configuration."""
    window = config.rate_limit_window
    return {
        "auth": RateLimitTier(
            "auth", config.rate_limit_auth, window, KeyStrategy.ADDRESS,
            "Too many authentication attempts, please try again later",
        ),
        "general": RateLimitTier(
            "general", config.rate_limit_general, window, KeyStrategy.IDENTITY,
            "Too many requests, please try again later",
        ),
        "health": RateLimitTier(
            "health", config.rate_limit_health, window, KeyStrategy.ADDRESS,
            "Too many health check requests, please try again later",
        ),
        "admin": RateLimitTier(
            "admin", config.rate_limit_admin, window, KeyStrategy.IDENTITY,
            "Too many admin requests, please try again later",
        ),
    }


class RateLimiter:
    """Counts requests per ``(tier, key)`` and rejects callers over budget."""

    def __init__(self, store: RateLimitStore, tiers: Mapping[str, RateLimitTier], *,
                 disabled: bool = False, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.tiers = dict(tiers)
        self.disabled = disabled
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limiter")

    def get_tier(self, name: str) -> RateLimitTier:
        try:
            return self.tiers[name]
        except KeyError:
            raise ValueError(f"unknown rate limit tier: {name!r}") from None

    @staticmethod
    def resolve_key(tier: RateLimitTier, client_address: Optional[str],
                    subject: Optional[str] = None) -> str:
        """Identity tiers key on the subject, falling back to the address."""
        if tier.key_strategy is KeyStrategy.IDENTITY and subject:
            return f"user:{subject}"
        return f"ip:{client_address or 'unknown'}"

    async def check(self, tier_name: str, *, client_address: Optional[str],
                    subject: Optional[str] = None, user_agent: Optional[str] = None,
                    endpoint: Optional[str] = None) -> Optional[RateLimitResult]:
        """Count the request; return the result or raise ``RateLimitError``.

        Returns ``None`` when limiting is disabled for the environment.
        """
        if self.disabled:
            return None

        tier = self.get_tier(tier_name)
        key = self.resolve_key(tier, client_address, subject)

        try:
            bucket = await self.store.hit(f"{tier.name}:{key}", tier.window_seconds)
        except Exception as e:
            # Store outages fail open; the request is served without limits
            self.logger.error("Rate limit check error", tier=tier.name, error=str(e))
            return None

        result = RateLimitResult(
            tier=tier.name,
            limit=tier.max_requests,
            count=bucket.count,
            window_minutes=tier.window_minutes,
            reset_in_seconds=bucket.reset_in_seconds,
        )

        if not result.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                ip=client_address,
                user_agent=user_agent or "Unknown",
                endpoint=endpoint,
                tier=tier.name,
                limit=tier.max_requests,
                window=tier.window_minutes
            )
            if self.metrics is not None:
                self.metrics.increment_counter("rate_limit_rejections_total", tier=tier.name)

            headers = result.headers()
            headers["Retry-After"] = str(tier.window_seconds)
            raise RateLimitError(
                limit=tier.max_requests,
                window=tier.window_minutes,
                retry_after=tier.window_seconds,
                message=tier.message,
                headers=headers,
            )

        return result
