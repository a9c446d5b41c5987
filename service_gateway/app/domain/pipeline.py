"""
Gatekeeping pipeline: the ordered chain of checks every gated route runs
before its handler.

The core (``GatekeepingPipeline.run``) is framework-neutral and works on an
``InboundRequest``. ``GatekeepingPipeline.guard`` adapts it to a FastAPI
dependency.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import Request, Response

from shared.logging import get_logger, set_user_context

from ..auth import ClaimSet, Role, RoleGate, TokenVerifier, parse_roles
from ..ratelimit import RateLimiter, RateLimitResult
from ..validation import SchemaValidator, ValidatedFacets, ValidationSchemas


STAGE_RATE_LIMIT = "rate_limit"
STAGE_AUTHENTICATE = "authenticate"
STAGE_AUTHORIZE = "authorize"
STAGE_VALIDATE = "validate"


class LimitPosition(str, Enum):
    """Where the rate-limit stage sits relative to authentication."""

    BEFORE_AUTH = "before_auth"
    AFTER_AUTH = "after_auth"


_STAGE_ORDER = {
    LimitPosition.BEFORE_AUTH: (STAGE_RATE_LIMIT, STAGE_AUTHENTICATE, STAGE_AUTHORIZE, STAGE_VALIDATE),
    LimitPosition.AFTER_AUTH: (STAGE_AUTHENTICATE, STAGE_AUTHORIZE, STAGE_RATE_LIMIT, STAGE_VALIDATE),
}


@dataclass
class InboundRequest:
    """Transport-independent view of a request entering the pipeline."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    params: Any = None
    query: Any = None
    client_address: Optional[str] = None
    user_agent: Optional[str] = None
    body_error: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def authorization(self) -> Optional[str]:
        return self.header("authorization")


@dataclass(frozen=True)
class GatePolicy:
    """Static gate configuration for one route."""

    name: str
    tier: Optional[str] = None
    roles: Tuple[Role, ...] = ()
    schemas: Optional[ValidationSchemas] = None
    authenticate: bool = True
    limit_position: LimitPosition = LimitPosition.AFTER_AUTH

    def __post_init__(self):
        roles = parse_roles(role.value if isinstance(role, Role) else role for role in self.roles)
        object.__setattr__(self, "roles", roles)
        if roles and not self.authenticate:
            raise ValueError(f"policy {self.name!r} requires roles but skips authentication")


@dataclass
class GateContext:
    """What the pipeline hands to the route handler."""

    claims: Optional[ClaimSet] = None
    facets: ValidatedFacets = field(default_factory=ValidatedFacets)
    rate_limit: Optional[RateLimitResult] = None

    @property
    def subject(self) -> Optional[str]:
        return self.claims.id if self.claims else None

    def response_headers(self) -> Dict[str, str]:
        """Headers every response to this request carries, errors included."""
        return self.rate_limit.headers() if self.rate_limit is not None else {}


def get_client_ip(request: Request, trusted_proxy_hops: int = 1) -> str:
    """Extract the caller IP, trusting only the last ``trusted_proxy_hops``
    proxies in front of the service.

    Each trusted proxy appends the address it saw to ``X-Forwarded-For``, so
    the client is the entry ``trusted_proxy_hops`` from the right. Entries to
    the left of it were supplied by the caller and are ignored. With no
    trusted proxies the forwarding headers are ignored altogether.
    """
    if trusted_proxy_hops > 0:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
            if hops:
                return hops[-min(trusted_proxy_hops, len(hops))]
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


class GatekeepingPipeline:
    """Runs rate limiting, authentication, authorization and validation in a
    fixed per-policy order. The first failing stage raises and nothing after
    it runs.
    """

    def __init__(self, verifier: TokenVerifier, role_gate: RoleGate,
                 validator: SchemaValidator, rate_limiter: RateLimiter,
                 *, trusted_proxy_hops: int = 1):
        self.verifier = verifier
        self.role_gate = role_gate
        self.validator = validator
        self.rate_limiter = rate_limiter
        self.trusted_proxy_hops = trusted_proxy_hops
        self.logger = get_logger("gateway.pipeline")

    def plan(self, policy: GatePolicy) -> List[str]:
        """Stages the policy actually runs, in order."""
        enabled = {
            STAGE_RATE_LIMIT: policy.tier is not None,
            STAGE_AUTHENTICATE: policy.authenticate,
            STAGE_AUTHORIZE: bool(policy.roles),
            STAGE_VALIDATE: policy.schemas is not None,
        }
        return [stage for stage in _STAGE_ORDER[policy.limit_position] if enabled[stage]]

    async def run(self, request: InboundRequest, policy: GatePolicy,
                  context: Optional[GateContext] = None) -> GateContext:
        """Run the policy's stages against ``request``.

        ``context`` is filled in place as stages pass, so a caller holding it
        still sees the rate-limit result when a later stage raises.
        """
        if context is None:
            context = GateContext()
        context.facets = ValidatedFacets(body=request.body, params=request.params, query=request.query)
        for stage in self.plan(policy):
            if stage == STAGE_RATE_LIMIT:
                context.rate_limit = await self.rate_limiter.check(
                    policy.tier,
                    client_address=request.client_address,
                    subject=context.subject,
                    user_agent=request.user_agent,
                    endpoint=request.path,
                )
            elif stage == STAGE_AUTHENTICATE:
                context.claims = self.verifier.authenticate(
                    request.authorization,
                    client_address=request.client_address,
                    endpoint=request.path,
                )
            elif stage == STAGE_AUTHORIZE:
                self.role_gate.check(context.claims, policy.roles, endpoint=request.path)
            elif stage == STAGE_VALIDATE:
                context.facets = self._validate(request, policy.schemas)

        self.logger.debug("Request passed gate", policy=policy.name, path=request.path,
                          user_id=context.subject)
        return context

    def _validate(self, request: InboundRequest, schemas: ValidationSchemas) -> ValidatedFacets:
        return self.validator.validate(
            schemas,
            body=request.body,
            params=request.params,
            query=request.query,
            body_error=request.body_error,
            endpoint=request.path,
        )

    def guard(self, policy: GatePolicy):
        """FastAPI dependency running ``policy`` against the current request."""

        async def dependency(request: Request, response: Response) -> GateContext:
            inbound = await build_inbound_request(
                request,
                read_body=_wants_body(policy),
                trusted_proxy_hops=self.trusted_proxy_hops,
            )
            # Error handlers read the rate-limit result from here
            context = GateContext()
            request.state.gate = context
            await self.run(inbound, policy, context)

            response.headers.update(context.response_headers())
            if context.claims is not None:
                set_user_context(context.claims.id)
            return context

        return dependency


def _wants_body(policy: GatePolicy) -> bool:
    return policy.schemas is not None and policy.schemas.body is not None


async def build_inbound_request(request: Request, *, read_body: bool = True,
                                trusted_proxy_hops: int = 1) -> InboundRequest:
    """Snapshot a Starlette request for the pipeline."""
    body: Any = None
    body_error = None
    if read_body:
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                body_error = "Malformed JSON body"

    return InboundRequest(
        method=request.method,
        path=request.url.path,
        headers=request.headers,
        body=body,
        params=dict(request.path_params),
        query=dict(request.query_params),
        client_address=get_client_ip(request, trusted_proxy_hops),
        user_agent=request.headers.get("User-Agent"),
        body_error=body_error,
    )
