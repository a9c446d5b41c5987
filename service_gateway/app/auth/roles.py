"""
Role-based authorization for gated endpoints.
"""

from enum import Enum
from typing import Iterable, Optional, Tuple

from shared.errors import AuthorizationError, InternalError
from shared.logging import get_logger

from .tokens import ClaimSet


class Role(str, Enum):
    """Profile names an endpoint may require."""

    ADMIN = "admin"
    USER = "user"


def parse_roles(values: Iterable[str]) -> Tuple[Role, ...]:
    """Validate role names loaded at runtime (config, policies)."""
    roles = []
    for value in values:
        try:
            roles.append(Role(value))
        except ValueError:
            raise ValueError(f"unknown role: {value!r}") from None
    return tuple(roles)


class RoleGate:
    """Exact-match membership check of the caller's profile against a requirement."""

    def __init__(self) -> None:
        self.logger = get_logger("gateway.auth.roles")

    def check(self, claims: Optional[ClaimSet], required: Tuple[Role, ...],
              *, endpoint: Optional[str] = None) -> ClaimSet:
        if claims is None:
            # Reaching the gate without verified claims means the chain was
            # assembled in the wrong order.
            self.logger.error("Role gate invoked without a verified claim set", endpoint=endpoint)
            raise InternalError("Internal authorization error", code="AUTH_SYSTEM_ERROR")

        allowed = [role.value for role in required]
        if claims.profile_name not in allowed:
            self.logger.warning(
                "Authorization failed: insufficient permissions",
                user_id=claims.id,
                user_role=claims.profile_name,
                allowed_roles=allowed,
                endpoint=endpoint
            )
            raise AuthorizationError(required=allowed, current=claims.profile_name)

        self.logger.info(
            "Authorization successful",
            user_id=claims.id,
            user_role=claims.profile_name,
            endpoint=endpoint
        )
        return claims
