"""
API Gateway service for the Access Gateway.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import success_response
from shared.http_client import RetryingHTTPClient
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig

from .adapters.identity_store import IdentityStoreClient
from .auth import RoleGate, TokenVerifier
from .domain import policies
from .domain.accounts import AccountService
from .domain.pipeline import GateContext, GatekeepingPipeline
from .domain.projects import ProjectService
from .ratelimit import InMemoryRateLimitStore, RateLimiter, RateLimitStore, RedisRateLimitStore, default_tiers
from .validation import SchemaValidator


SERVICE_NAME = "gateway"
SERVICE_PORT = 8000
VERSION = "1.0.0"


class GatewayService(BaseService):
    """API Gateway service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, *,
                 metrics: Optional[MetricsCollector] = None,
                 identity_store: Optional[IdentityStoreClient] = None,
                 rate_limit_store: Optional[RateLimitStore] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config, metrics=metrics)

        self.verifier = TokenVerifier(
            self.config.jwt_secret,
            self.config.jwt_algorithms,
            expires_in=self.config.jwt_expires_in,
            metrics=self.metrics,
        )
        self.rate_limit_store = rate_limit_store or self._build_rate_limit_store()
        self.rate_limiter = RateLimiter(
            self.rate_limit_store,
            default_tiers(self.config),
            disabled=self.config.rate_limiting_disabled,
            metrics=self.metrics,
        )
        self.pipeline = GatekeepingPipeline(
            self.verifier,
            RoleGate(),
            SchemaValidator(),
            self.rate_limiter,
            trusted_proxy_hops=self.config.trusted_proxy_hops,
        )

        self.identity_store = identity_store or IdentityStoreClient(self._build_identity_http_client())
        self.accounts = AccountService(self.identity_store, self.verifier, metrics=self.metrics)
        self.projects = ProjectService(self.identity_store, metrics=self.metrics)

        self._setup_gateway_routes()
        self._setup_auth_routes()
        self._setup_project_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    async def shutdown(self):
        await self.identity_store.close()
        await self.rate_limit_store.close()

    def _build_rate_limit_store(self) -> RateLimitStore:
        if self.config.rate_limit_backend == "redis":
            self.logger.info("Using Redis rate limit store", redis_url=self.config.redis_url)
            return RedisRateLimitStore(self.config.redis_url)
        return InMemoryRateLimitStore()

    def _build_identity_http_client(self) -> RetryingHTTPClient:
        key = self.config.identity_store_key
        headers = {"apikey": key, "Authorization": f"Bearer {key}"} if key else {}
        return RetryingHTTPClient(
            self.config.identity_store_url,
            timeout=self.config.http_timeout,
            retry_config=RetryConfig(
                max_retries=self.config.http_retry_attempts,
                base_delay=self.config.http_retry_delay,
            ),
            headers=headers,
            name="identity_store",
            metrics=self.metrics,
        )

    def _setup_gateway_routes(self):
        """Set up service-level routes."""

        @self.app.get("/health")
        async def health_check(gate: GateContext = Depends(self.pipeline.guard(policies.HEALTH))):
            """Health check endpoint."""
            return success_response("API running normally", {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": self.config.env,
                "version": VERSION,
                "uptime": int(self._get_uptime()),
            })

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return success_response("Access Gateway", {
                "version": VERSION,
                "documentation": "/docs",
                "health": "/health",
                "environment": self.config.env,
            })

    def _setup_auth_routes(self):
        """Set up authentication and account routes."""

        @self.app.post("/api/auth/login")
        async def login(gate: GateContext = Depends(self.pipeline.guard(policies.LOGIN))):
            body = gate.facets.body
            result = await self.accounts.login(body.email, body.password)
            return success_response("Login successful", result)

        @self.app.get("/api/auth/me")
        async def me(gate: GateContext = Depends(self.pipeline.guard(policies.ME))):
            return success_response("User data retrieved successfully", self.accounts.profile(gate.claims))

        @self.app.get("/api/auth/validate")
        async def validate_token(gate: GateContext = Depends(self.pipeline.guard(policies.VALIDATE_TOKEN))):
            return success_response("Token valid", {"valid": True, "user_id": gate.claims.id})

        @self.app.post("/api/auth/users", status_code=201)
        async def create_user(gate: GateContext = Depends(self.pipeline.guard(policies.CREATE_USER))):
            body = gate.facets.body
            user = await self.accounts.create_user(body.name, body.email, body.profile_id, actor_id=gate.subject)
            return success_response("User created successfully", user)

        @self.app.patch("/api/auth/users/{id}/status")
        async def update_user_status(
            gate: GateContext = Depends(self.pipeline.guard(policies.UPDATE_USER_STATUS))
        ):
            result = await self.accounts.update_user_status(
                gate.facets.params.id,
                gate.facets.body.status,
                actor_id=gate.subject,
            )
            return success_response("User status updated", result)

        @self.app.post("/api/auth/change-password")
        async def change_password(gate: GateContext = Depends(self.pipeline.guard(policies.CHANGE_PASSWORD))):
            body = gate.facets.body
            await self.accounts.change_password(body.email, body.new_password, actor_id=gate.subject)
            return success_response("Password changed successfully")

        @self.app.post("/api/auth/check-sync")
        async def check_sync(gate: GateContext = Depends(self.pipeline.guard(policies.CHECK_SYNC))):
            result = await self.accounts.check_sync(gate.facets.body.email)
            return success_response("User synchronization status verified", result)

    def _setup_project_routes(self):
        """Set up project routes; every one is scoped to the caller."""

        @self.app.post("/api/projects", status_code=201)
        async def create_project(gate: GateContext = Depends(self.pipeline.guard(policies.CREATE_PROJECT))):
            project = await self.projects.create(gate.subject, gate.facets.body.name)
            return success_response("Project created successfully", project)

        @self.app.get("/api/projects")
        async def list_projects(gate: GateContext = Depends(self.pipeline.guard(policies.LIST_PROJECTS))):
            query = gate.facets.query
            result = await self.projects.list(
                gate.subject,
                status=query.status,
                page=query.page,
                limit=query.limit,
            )
            return success_response("Projects retrieved successfully", result)

        @self.app.get("/api/projects/{id}")
        async def get_project(gate: GateContext = Depends(self.pipeline.guard(policies.GET_PROJECT))):
            project = await self.projects.get(gate.subject, gate.facets.params.id)
            return success_response("Project details retrieved", project)

        @self.app.patch("/api/projects/{id}")
        async def update_project(gate: GateContext = Depends(self.pipeline.guard(policies.UPDATE_PROJECT))):
            body = gate.facets.body
            project = await self.projects.update(
                gate.subject,
                gate.facets.params.id,
                name=body.name,
                status=body.status,
            )
            return success_response("Project updated successfully", project)

        @self.app.delete("/api/projects/{id}")
        async def delete_project(gate: GateContext = Depends(self.pipeline.guard(policies.DELETE_PROJECT))):
            await self.projects.delete(gate.subject, gate.facets.params.id)
            return success_response("Project deleted successfully")


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = GatewayService(config or get_config(SERVICE_NAME, SERVICE_PORT))
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
