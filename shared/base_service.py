"""
Base service class for Access Gateway services.
"""

import time
import traceback
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import ServiceConfig, get_config
from shared.errors import ApiResponse, GatewayException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import MetricsCollector, get_metrics_collector


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.metrics = metrics or get_metrics_collector(service_name)
        self._start_time = time.time()

        # Configure logging
        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Access Gateway - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        self.logger.info("Service shutting down")
        await self.shutdown()

    async def shutdown(self):
        """Release resources held by the service. Called once when the app stops."""

    def _setup_middleware(self):
        """Set up middleware."""

        # CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else self.config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            start_time = time.time()
            request_id = set_request_id(request.headers.get("X-Request-ID"))

            try:
                # Process request
                response = await call_next(request)
            finally:
                duration = time.time() - start_time

            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")

            # Record metrics
            self.metrics.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                duration=duration
            )

            # Log request
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-ID"] = request_id
            clear_context()
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.export(),
                media_type=CONTENT_TYPE_LATEST
            )

        # Error handlers
        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            """Handle GatewayException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Gateway error",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump(),
                headers=self._response_headers(request, exc.headers)
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Render framework HTTP errors (unknown routes etc.) in the envelope."""
            if exc.status_code == 404:
                self.logger.warning(
                    "Route not found",
                    method=request.method,
                    path=request.url.path,
                    user_agent=request.headers.get("User-Agent")
                )
                body = ApiResponse(
                    status="error",
                    message="Route not found",
                    data={"code": "ROUTE_NOT_FOUND", "method": request.method, "path": request.url.path},
                )
            else:
                body = ApiResponse(
                    status="error",
                    message=str(exc.detail),
                    data={"code": "HTTP_ERROR"},
                )
            return JSONResponse(status_code=exc.status_code, content=body.model_dump(),
                                headers=self._response_headers(request, getattr(exc, "headers", None)))

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Framework-level parameter errors share the validation envelope."""
            errors = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            body = ApiResponse(
                status="error",
                message="Validation failed",
                data={"code": "VALIDATION_ERROR", "errors": errors},
            )
            return JSONResponse(status_code=400, content=body.model_dump(),
                                headers=self._response_headers(request))

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error(
                "Unhandled exception",
                error=str(exc),
                method=request.method,
                path=request.url.path,
                exc_info=True
            )
            self.metrics.record_error("INTERNAL_ERROR")
            data: Dict[str, object] = {"code": "INTERNAL_ERROR"}
            if not self.config.is_production:
                data["error"] = str(exc)
                data["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
            return JSONResponse(
                status_code=500,
                content=ApiResponse(
                    status="error",
                    message="Internal server error",
                    data=data,
                ).model_dump(),
                headers=self._response_headers(request)
            )

    @staticmethod
    def _response_headers(request: Request, extra: Optional[Dict[str, str]] = None) -> Optional[Dict[str, str]]:
        """Headers a gate attached to the request (rate-limit state) plus ``extra``."""
        headers: Dict[str, str] = {}
        gate = getattr(request.state, "gate", None)
        if gate is not None:
            headers.update(gate.response_headers())
        if extra:
            headers.update(extra)
        return headers or None

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
