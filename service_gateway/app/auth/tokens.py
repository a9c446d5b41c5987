"""
Bearer token issuance and verification for the Access Gateway.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from jose import ExpiredSignatureError, JWTError, jwt

from shared.errors import (
    AuthenticationError,
    ExpiredTokenError,
    InvalidTokenPayloadError,
    MalformedTokenError,
    MissingTokenError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector


REQUIRED_CLAIMS = ("id", "email", "profile_id", "profile_name")
BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class ClaimSet:
    """Verified identity carried by a request for its whole duration."""

    id: str
    email: str
    profile_id: str
    profile_name: str
    iat: Optional[int] = None
    exp: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClaimSet":
        return cls(
            id=payload["id"],
            email=payload["email"],
            profile_id=payload["profile_id"],
            profile_name=payload["profile_name"],
            iat=payload.get("iat"),
            exp=payload.get("exp"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "profile_id": self.profile_id,
            "profile_name": self.profile_name,
            "iat": self.iat,
            "exp": self.exp,
        }


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise MissingTokenError()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingTokenError()
    return token


class TokenVerifier:
    """Verifies HMAC-signed JWTs against a secret and an algorithm allow-list."""

    def __init__(
        self,
        secret: str,
        algorithms: Sequence[str] = ("HS256",),
        *,
        expires_in: int = 24 * 3600,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if not algorithms:
            raise ValueError("at least one algorithm must be allowed")
        self.secret = secret
        self.algorithms = list(algorithms)
        self.expires_in = expires_in
        self.metrics = metrics
        self.logger = get_logger("gateway.auth.tokens")
        self.audit_logger = get_logger("gateway.auth.audit")

    def issue(self, user: Mapping[str, Any], *, now: Optional[int] = None) -> str:
        """Sign a token for ``user`` with the default lifetime."""
        issued_at = int(now if now is not None else time.time())
        payload = {claim: user[claim] for claim in REQUIRED_CLAIMS}
        payload["iat"] = issued_at
        payload["exp"] = issued_at + self.expires_in
        return jwt.encode(payload, self.secret, algorithm=self.algorithms[0])

    def verify(self, token: str) -> ClaimSet:
        """Verify signature, algorithm and expiry, then check required claims."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=self.algorithms)
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError() from exc
        except JWTError as exc:
            raise MalformedTokenError() from exc

        missing = [claim for claim in REQUIRED_CLAIMS if not payload.get(claim)]
        if missing:
            raise InvalidTokenPayloadError(missing)

        return ClaimSet.from_payload(payload)

    def authenticate(
        self,
        authorization: Optional[str],
        *,
        client_address: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> ClaimSet:
        """Full header-to-claims check with an audit record for every attempt."""
        try:
            token = extract_bearer_token(authorization)
            claims = self.verify(token)
        except AuthenticationError as exc:
            self._audit(exc.code, None, client_address, endpoint, level="warning")
            raise

        self._audit("SUCCESS", claims.id, client_address, endpoint, level="info",
                    profile=claims.profile_name)
        return claims

    def _audit(self, outcome: str, subject: Optional[str], client_address: Optional[str],
               endpoint: Optional[str], *, level: str, **extra: Any) -> None:
        log = getattr(self.audit_logger, level)
        log(
            "Token verification",
            outcome=outcome,
            subject=subject,
            client_address=client_address,
            endpoint=endpoint,
            **extra
        )
        if self.metrics is not None:
            self.metrics.increment_counter("auth_attempts_total", outcome=outcome.lower())
