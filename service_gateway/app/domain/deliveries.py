"""
Delivery creation flow for the Gateway.

Each request is rate limited, short-circuited on an idempotency hit, and
otherwise sent upstream with a cached access token. Only successful upstream
responses are recorded for replay.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..adapters.delivery_client import DeliveryClient
from ..caching.idempotency import IdempotencyCache
from ..ratelimit.fixed_window import RateLimitMiddleware

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class DeliveryOutcome:
    """Status and raw body to hand back to the client."""

    status_code: int
    body: str
    cache_hit: bool = False


@dataclass(frozen=True)
class UpstreamRejected(DeliveryOutcome):
    """Upstream answered with a non-2xx status that was not retried away."""


class DeliveryService:
    """Composes rate limiting, idempotency and the upstream call."""

    def __init__(
        self,
        rate_limit_middleware: RateLimitMiddleware,
        idempotency_cache: IdempotencyCache,
        delivery_client: DeliveryClient,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.rate_limit_middleware = rate_limit_middleware
        self.idempotency_cache = idempotency_cache
        self.delivery_client = delivery_client
        self.metrics = metrics
        self.logger = get_logger("gateway.deliveries")

    async def create_delivery(
        self,
        payload: Dict[str, Any],
        idempotency_key: str,
        client_id: str,
    ) -> DeliveryOutcome:
        """Run one delivery request through the gateway."""
        await self.rate_limit_middleware.check_client(client_id)

        cached = await self.idempotency_cache.lookup(idempotency_key)
        if cached is not None:
            self.logger.info("Replaying stored delivery response", idempotency_key=idempotency_key)
            return DeliveryOutcome(status_code=cached.status, body=cached.body, cache_hit=True)

        response = await self.delivery_client.create_delivery(payload, idempotency_key)
        body = response.text

        if not response.is_success:
            self.logger.warning(
                "Upstream delivery error",
                idempotency_key=idempotency_key,
                status_code=response.status_code,
                body=body,
            )
            if self.metrics:
                self.metrics.record_error("upstream_rejected")
            return UpstreamRejected(status_code=response.status_code, body=body)

        await self.idempotency_cache.store(idempotency_key, response.status_code, body)
        return DeliveryOutcome(status_code=response.status_code, body=body)
