"""
API Gateway Service package for the Access Gateway.

The gateway fronts client requests, enforcing:
- Authentication: HMAC-signed bearer tokens verified locally
- Authorization: exact role membership per route
- Validation: per-facet request schemas with aggregated errors
- Rate limiting: fixed-window tiers keyed by address or identity
- Retries with exponential backoff for calls to the identity/data store

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.auth: Token verification/issuance and the role gate.
- app.validation: Schema validator and request schemas.
- app.ratelimit: Tiered limiter and counter stores.
- app.lifecycle: Status transition graphs.
- app.adapters: HTTP clients for remote services.
- app.domain: Gatekeeping pipeline, route policies, account/project services.
"""
