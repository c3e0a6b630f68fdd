"""
Base service class for the delivery gateway.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import time

from shared.config import GatewaySettings, get_settings
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector
from shared.errors import GatewayException, RateLimitExceeded, ValidationError


class BaseService:
    """Base service class with common functionality."""

    api_prefix = "/v1"

    def __init__(self, service_name: str, config: Optional[GatewaySettings] = None):
        self.service_name = service_name
        self.config = config or get_settings()

        configure_logging(service_name, self.config.log_level, self.config.log_format)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            try:
                yield
            finally:
                await self.on_shutdown()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Delivery gateway - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.cors_allowed_origins,
            allow_origin_regex=self.config.cors_allowed_origin_regex,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "Idempotency-Key"],
            max_age=86400,
        )

        self.app.middleware("http")(self.add_request_timing)

    async def add_request_timing(self, request: Request, call_next):
        """Tag the request with an id, then record its metrics and access log.

        Correlation context is cleared however the request ends.
        """
        start_time = time.time()
        request_id = set_request_id(request.headers.get("X-Request-ID"))

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            self.metrics.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get(f"{self.api_prefix}/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "ok": True,
                "service": self.service_name,
                "uptime_seconds": self._get_uptime(),
                "version": "1.0.0",
            }

        @self.app.get(f"{self.api_prefix}/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            """Map typed gateway failures to their HTTP status."""
            log = self.logger.warning if exc.status_code < 500 else self.logger.error
            log(
                "Gateway error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code.lower())

            headers = {}
            if isinstance(exc, RateLimitExceeded):
                headers["Retry-After"] = str(exc.window_seconds)

            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump(),
                headers=headers,
            )

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            """Report malformed request bodies in the gateway error format."""
            error = ValidationError(
                details={"errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ]}
            )
            self.metrics.record_error(error.code.lower())
            return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("internal_error")
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    async def on_startup(self) -> None:
        """Hook run when the app starts. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Hook run when the app stops. Override in subclasses."""

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
