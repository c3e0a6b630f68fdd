"""
Upstream HTTP client with bounded retry and capped exponential backoff.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

import httpx

from shared.errors import TransportExhausted
from shared.logging import get_logger
from shared.retry import RetryConfig, calculate_delay, is_retryable_status

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_MAX_RETRIES = 2


class ResilientHttpClient:
    """Sends requests, retrying 5xx, 429 and transport failures.

    Non-retryable responses are handed back unchanged for the caller to
    relay. Cancellation is never swallowed: a cancelled caller stops the
    retry loop wherever it is suspended.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_config: Optional[RetryConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[float, float], float] = random.uniform,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.http_client = http_client
        self.retry_config = retry_config or RetryConfig()
        self.metrics = metrics
        self.logger = get_logger("gateway.upstream")
        self._sleep = sleep
        self._rand = rand

    async def call(self, request: httpx.Request, max_retries: int = DEFAULT_MAX_RETRIES) -> httpx.Response:
        """Send ``request`` with up to ``max_retries`` retries."""
        last_response: Optional[httpx.Response] = None
        last_error: Optional[httpx.TransportError] = None

        for attempt in range(max_retries + 1):
            try:
                response = await self.http_client.send(request)
            except httpx.TransportError as exc:
                last_error = exc
                self._record_attempt("transport_error")
                self.logger.warning(
                    "Upstream transport error",
                    url=str(request.url),
                    attempt=attempt + 1,
                    error=str(exc),
                )
            else:
                last_response = response
                last_error = None
                if response.is_success:
                    self._record_attempt("success")
                    return response

                if not is_retryable_status(response.status_code):
                    self._record_attempt("rejected")
                    return response

                self._record_attempt("retryable")
                self.logger.warning(
                    "Upstream returned retryable status",
                    url=str(request.url),
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )

            if attempt == max_retries:
                break

            delay = calculate_delay(attempt, self.retry_config, self._rand)
            self.logger.debug("Backing off before retry", attempt=attempt + 1, delay=delay)
            await self._sleep(delay)

        if last_error is not None and last_response is None:
            self.logger.error(
                "Upstream unreachable, retries exhausted",
                url=str(request.url),
                attempts=max_retries + 1,
            )
            raise TransportExhausted(attempts=max_retries + 1, last_error=last_error)

        if last_error is not None:
            self.logger.warning(
                "Final attempt failed in transport; returning last delivered response",
                url=str(request.url),
                status_code=last_response.status_code,
            )
        return last_response

    def _record_attempt(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_attempts_total", outcome=outcome)
