"""
Delivery API client for Gateway.
"""

import json
from typing import Any, Dict

import httpx

from shared.logging import get_logger
from ..auth.oauth import OAuthTokenCache
from .resilient_client import DEFAULT_MAX_RETRIES, ResilientHttpClient


class DeliveryClient:
    """Creates deliveries on the upstream API for one customer account."""

    def __init__(
        self,
        base_url: str,
        customer_id: str,
        token_cache: OAuthTokenCache,
        resilient_client: ResilientHttpClient,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.base_url = httpx.URL(base_url if base_url.endswith("/") else f"{base_url}/")
        self.customer_id = customer_id
        self.token_cache = token_cache
        self.resilient_client = resilient_client
        self.max_retries = max_retries
        self.logger = get_logger("gateway.delivery_client")

    @property
    def deliveries_url(self) -> httpx.URL:
        return self.base_url.join(f"customers/{self.customer_id}/deliveries")

    async def create_delivery(self, payload: Dict[str, Any], idempotency_key: str) -> httpx.Response:
        """POST a delivery; the upstream response is returned whatever its status."""
        token = await self.token_cache.get_token()

        request = self.resilient_client.http_client.build_request(
            "POST",
            self.deliveries_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
                "Idempotency-Key": idempotency_key,
            },
            content=json.dumps(payload).encode("utf-8"),
        )

        response = await self.resilient_client.call(request, max_retries=self.max_retries)
        self.logger.info(
            "Upstream delivery call completed",
            idempotency_key=idempotency_key,
            status_code=response.status_code,
        )
        return response
