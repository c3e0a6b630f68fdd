"""
Fixed-window rate limiter for Gateway service.
"""

from typing import Mapping, Optional, TYPE_CHECKING

from shared.errors import RateLimitExceeded
from shared.logging import get_logger, set_client_context
from ..caching.store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_WINDOW_SECONDS = 60
AUTH_PREFIX_LENGTH = 16


class FixedWindowRateLimiter:
    """Per-identity request counter over tumbling windows.

    The window counter is created by the first request with a TTL equal to
    the window and is never extended, so a burst straddling a boundary can
    admit up to twice the limit.
    """

    def __init__(self, store: CacheStore, *, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limiter")

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rl:{client_id}"

    async def count(self, client_id: str, window_seconds: int) -> int:
        """Count this request and return the running total for the window."""
        return await self.store.increment_with_ttl(self._make_key(client_id), window_seconds)

    async def check_and_count(self, client_id: str, window_seconds: int, max_per_window: int) -> bool:
        """Count the request and report whether it fits in the window.

        StoreUnavailable propagates; the gateway fails closed.
        """
        return await self.count(client_id, window_seconds) <= max_per_window

    async def enforce(self, client_id: str, window_seconds: int, max_per_window: int) -> int:
        """Count the request, raising RateLimitExceeded when over budget."""
        current_count = await self.count(client_id, window_seconds)
        if current_count > max_per_window:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=current_count,
                limit=max_per_window,
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_rejections_total")
            raise RateLimitExceeded(
                limit=max_per_window,
                current_count=current_count,
                window_seconds=window_seconds,
            )
        return current_count


def get_client_id(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit identity of a caller from its headers."""
    authorization = headers.get("authorization")
    if authorization:
        return f"auth:{authorization[:AUTH_PREFIX_LENGTH]}"

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"

    return "ip:unknown"


class RateLimitMiddleware:
    """Applies the per-minute budget to incoming requests."""

    def __init__(
        self,
        rate_limiter: FixedWindowRateLimiter,
        max_per_window: int,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ):
        self.rate_limiter = rate_limiter
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.logger = get_logger("gateway.rate_limit_middleware")

    async def check_client(self, client_id: str) -> int:
        """Enforce the budget for an already derived identity."""
        set_client_context(client_id)
        return await self.rate_limiter.enforce(client_id, self.window_seconds, self.max_per_window)
