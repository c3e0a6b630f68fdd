"""
Idempotency cache for replayed delivery requests.

Completed responses are stored under ``idem:<scope>:<key>`` for five minutes
and returned verbatim when the same key comes back. There is no claim step,
so two requests racing with a fresh key may both reach the upstream.
"""

from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


IDEMPOTENCY_TTL_SECONDS = 300


@dataclass(frozen=True)
class IdempotencyRecord:
    """Completed upstream response captured for replay."""

    key: str
    status: int
    body: str


class IdempotencyCache:
    """Stores completed responses keyed by a client idempotency token."""

    def __init__(
        self,
        store: CacheStore,
        scope: str = "deliveries",
        ttl_seconds: int = IDEMPOTENCY_TTL_SECONDS,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache_store = store
        self.scope = scope
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("gateway.idempotency")

    def _make_key(self, key: str) -> str:
        return f"idem:{self.scope}:{key}"

    async def lookup(self, key: str) -> Optional[IdempotencyRecord]:
        """Return the stored response for ``key``, if any."""
        cached = await self.cache_store.get(self._make_key(key))
        record = self._parse(key, cached)

        if self.metrics:
            self.metrics.increment_counter("idempotency_cache_total", result="hit" if record else "miss")

        if record:
            self.logger.debug("Idempotency cache hit", idempotency_key=key, status=record.status)
        return record

    async def store(self, key: str, status: int, body: str) -> IdempotencyRecord:
        """Record a completed response for ``key``."""
        record = IdempotencyRecord(key=key, status=status, body=body)
        await self.cache_store.set(
            self._make_key(key),
            {"status": status, "body": body},
            self.ttl_seconds,
        )
        self.logger.debug("Idempotency record stored", idempotency_key=key, status=status)
        return record

    def _parse(self, key: str, cached: Any) -> Optional[IdempotencyRecord]:
        if cached is None:
            return None

        if (
            not isinstance(cached, dict)
            or not isinstance(cached.get("status"), int)
            or not isinstance(cached.get("body"), str)
        ):
            self.logger.warning("Ignoring malformed idempotency record", idempotency_key=key)
            return None

        return IdempotencyRecord(key=key, status=cached["status"], body=cached["body"])
