"""
Delivery Gateway service.
"""

import uuid
from typing import Optional

import httpx
from fastapi import Header, Request, Response

from shared.base_service import BaseService
from shared.config import GatewaySettings
from shared.retry import RetryConfig

from .adapters.delivery_client import DeliveryClient
from .adapters.resilient_client import ResilientHttpClient
from .auth.oauth import OAuthCredentials, OAuthTokenCache
from .caching.idempotency import IdempotencyCache
from .caching.store import CacheStore, create_cache_store
from .domain.deliveries import DeliveryService
from .domain.schemas import DeliveryRequest
from .ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitMiddleware, get_client_id


class GatewayService(BaseService):
    """Delivery gateway service implementation."""

    def __init__(
        self,
        config: Optional[GatewaySettings] = None,
        *,
        cache_store: Optional[CacheStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        super().__init__("gateway", config)

        # Backend is fixed for the life of the process
        self.cache_store = cache_store or create_cache_store(self.config)
        self.http_client = httpx.AsyncClient(
            timeout=self.config.upstream_timeout_seconds,
            transport=transport,
        )

        self.rate_limiter = FixedWindowRateLimiter(self.cache_store, metrics=self.metrics)
        self.rate_limit_middleware = RateLimitMiddleware(
            self.rate_limiter,
            max_per_window=self.config.rate_limit_per_minute,
        )
        self.idempotency_cache = IdempotencyCache(self.cache_store, "deliveries", metrics=self.metrics)
        self.token_cache = OAuthTokenCache(
            self.cache_store,
            OAuthCredentials(
                provider=self.config.oauth_provider,
                token_url=self.config.oauth_token_url,
                client_id=self.config.oauth_client_id,
                client_secret=self.config.oauth_client_secret,
                scope=self.config.oauth_scope,
            ),
            self.http_client,
            metrics=self.metrics,
        )
        self.resilient_client = ResilientHttpClient(self.http_client, retry_config, metrics=self.metrics)
        self.delivery_client = DeliveryClient(
            self.config.upstream_base_url,
            self.config.upstream_customer_id,
            self.token_cache,
            self.resilient_client,
            max_retries=self.config.upstream_max_retries,
        )
        self.delivery_service = DeliveryService(
            self.rate_limit_middleware,
            self.idempotency_cache,
            self.delivery_client,
            metrics=self.metrics,
        )

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_gateway_routes(self):
        """Set up delivery routes."""

        @self.app.post(f"{self.api_prefix}/deliveries")
        async def create_delivery(
            payload: DeliveryRequest,
            request: Request,
            idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
        ):
            """Create a delivery upstream, replaying stored responses for repeated keys."""
            key = idempotency_key or str(uuid.uuid4())
            client_id = get_client_id(request.headers)

            outcome = await self.delivery_service.create_delivery(
                payload.model_dump(exclude_none=True),
                key,
                client_id,
            )

            headers = {"Idempotency-Key": key}
            if outcome.cache_hit:
                headers["Idempotent-Cache"] = "hit"

            return Response(
                content=outcome.body,
                status_code=outcome.status_code,
                media_type="application/json",
                headers=headers,
            )

    async def on_shutdown(self) -> None:
        await self.http_client.aclose()
        await self.cache_store.close()


def create_app(config: Optional[GatewaySettings] = None):
    """Create FastAPI application."""
    service = GatewayService(config)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
