"""
Shared configuration management for the Access Gateway.
"""

import re
from typing import Annotated, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


SUPPORTED_JWT_ALGORITHMS = ("HS256", "HS384", "HS512")
ENVIRONMENTS = ("local", "development", "production", "test")

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> int:
    """Parse ``3600``, ``"30m"``, ``"24h"`` or ``"7d"`` into seconds."""
    if isinstance(value, bool):
        raise ValueError("duration must be a number of seconds or a string like '24h'")
    if isinstance(value, (int, float)):
        return int(value)
    match = _DURATION_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Token signing
    jwt_secret: str = Field(min_length=32)
    jwt_algorithms: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["HS256"])
    jwt_expires_in: int = 24 * 3600

    # Rate limiting (window in minutes, limits in requests per window)
    rate_limit_window: int = Field(default=1, gt=0)
    rate_limit_auth: int = Field(default=5, gt=0)
    rate_limit_general: int = Field(default=100, gt=0)
    rate_limit_health: int = Field(default=1000, gt=0)
    rate_limit_admin: Optional[int] = None
    rate_limit_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Reverse proxies in front of the service whose X-Forwarded-For entries are trusted
    trusted_proxy_hops: int = Field(default=1, ge=0)

    # Outbound HTTP client
    http_timeout: float = Field(default=10.0, gt=0)
    http_retry_attempts: int = Field(default=3, ge=0)
    http_retry_delay: float = Field(default=1.0, ge=0)

    # Remote identity/data store
    identity_store_url: str = "http://localhost:54321"
    identity_store_key: str = ""

    # CORS
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("env")
    @classmethod
    def _check_env(cls, value: str) -> str:
        value = value.lower()
        if value not in ENVIRONMENTS:
            raise ValueError(f"env must be one of {', '.join(ENVIRONMENTS)}")
        return value

    @field_validator("jwt_algorithms", mode="before")
    @classmethod
    def _split_algorithms(cls, value):
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("jwt_algorithms")
    @classmethod
    def _check_algorithms(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one JWT algorithm is required")
        unsupported = [alg for alg in value if alg not in SUPPORTED_JWT_ALGORITHMS]
        if unsupported:
            raise ValueError(f"unsupported JWT algorithm(s): {', '.join(unsupported)}")
        return value

    @field_validator("jwt_expires_in", mode="before")
    @classmethod
    def _parse_expiry(cls, value):
        return parse_duration(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("rate_limit_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("memory", "redis"):
            raise ValueError("rate_limit_backend must be 'memory' or 'redis'")
        return value

    @model_validator(mode="after")
    def _default_admin_limit(self):
        if self.rate_limit_admin is None:
            # Admin endpoints get half of the general budget
            self.rate_limit_admin = max(1, self.rate_limit_general // 2)
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def rate_limiting_disabled(self) -> bool:
        return self.env == "test"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
