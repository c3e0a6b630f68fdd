"""
Key/value cache stores for the Gateway.

Every store exposes the same three operations (get, set, increment_with_ttl)
and is chosen once at start-up by ``create_cache_store``.
"""

import copy
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, TYPE_CHECKING

import httpx
import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StoreUnavailable
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig


class CacheStore(ABC):
    """Uniform key/value interface with TTL semantics."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` or None when it is missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``, overwriting silently."""

    @abstractmethod
    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment ``key``.

        The TTL is applied only by the increment that creates the key
        (the one returning 1); later increments leave it untouched.
        """

    async def close(self) -> None:
        """Release backend connections."""


def _encode(value: Any) -> str:
    """Serialize a value for a string-only backend."""
    return value if isinstance(value, str) else json.dumps(value)


def _decode(raw: Any) -> Optional[Any]:
    """Deserialize a stored value, falling back to the raw string."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class LocalCacheStore(CacheStore):
    """Process-private store with lazy expiry.

    Entries are ``(value, expires_at)`` pairs; an entry is visible while
    ``clock() <= expires_at``. Values are deep-copied in and out so callers
    never share a reference with the store.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("gateway.cache.local")

    def _live_entry(self, key: str, now: float) -> Optional[Tuple[Any, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now > entry[1]:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is None:
                return None
            return copy.deepcopy(entry[0])

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), self._clock() + ttl_seconds)

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                self._entries[key] = (1, now + ttl_seconds)
                return 1

            count = int(entry[0]) + 1
            self._entries[key] = (count, entry[1])
            return count

    def expires_at(self, key: str) -> Optional[float]:
        """Absolute expiry of a live key, for diagnostics."""
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry[1] if entry else None

    def purge_expired(self) -> int:
        """Physically drop expired entries and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if now > expires_at]
            for key in expired:
                del self._entries[key]

        if expired:
            self.logger.debug("Purged expired cache entries", count=len(expired))
        return len(expired)


class RedisCacheStore(CacheStore):
    """Store backed by Redis through redis.asyncio."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("gateway.cache.redis")
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _unavailable(self, operation: str, key: str, exc: Exception) -> StoreUnavailable:
        self.logger.error("Redis command failed", operation=operation, key=key, error=str(exc))
        return StoreUnavailable(details={"backend": "redis", "operation": operation})

    async def get(self, key: str) -> Optional[Any]:
        try:
            redis_client = await self._get_redis()
            raw = await redis_client.get(key)
        except (RedisError, OSError) as exc:
            raise self._unavailable("get", key, exc) from exc
        return _decode(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            redis_client = await self._get_redis()
            await redis_client.set(key, _encode(value), ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise self._unavailable("set", key, exc) from exc

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        try:
            redis_client = await self._get_redis()
            count = int(await redis_client.incr(key))
            if count == 1:
                await redis_client.expire(key, ttl_seconds)
        except (RedisError, OSError) as exc:
            raise self._unavailable("incr", key, exc) from exc
        return count

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class UpstashRestCacheStore(CacheStore):
    """Store backed by Upstash's REST interface to Redis.

    Each command is POSTed as a JSON array; the reply is ``{"result": ...}``
    or ``{"error": "..."}``.
    """

    def __init__(
        self,
        rest_url: str,
        rest_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.rest_url = rest_url.rstrip("/")
        self.logger = get_logger("gateway.cache.upstash")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {rest_token}"}

    async def _command(self, *command: Any) -> Any:
        operation = str(command[0])
        try:
            response = await self._client.post(self.rest_url, json=list(command), headers=self._headers)
        except httpx.HTTPError as exc:
            self.logger.error("Upstash request failed", operation=operation, error=str(exc))
            raise StoreUnavailable(details={"backend": "upstash", "operation": operation}) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if (
            response.status_code >= 400
            or not isinstance(payload, dict)
            or "error" in payload
            or "result" not in payload
        ):
            self.logger.error(
                "Upstash command rejected",
                operation=operation,
                status_code=response.status_code,
                error=payload.get("error", "missing result") if isinstance(payload, dict) else "malformed reply",
            )
            raise StoreUnavailable(
                details={"backend": "upstash", "operation": operation, "status_code": response.status_code}
            )
        return payload["result"]

    async def get(self, key: str) -> Optional[Any]:
        return _decode(await self._command("GET", key))

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._command("SET", key, _encode(value), "EX", ttl_seconds)

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        result = await self._command("INCR", key)
        try:
            count = int(result)
        except (TypeError, ValueError) as exc:
            self.logger.error("Upstash INCR returned a non-integer", key=key, result=repr(result))
            raise StoreUnavailable(details={"backend": "upstash", "operation": "INCR"}) from exc
        if count == 1:
            await self._command("EXPIRE", key, ttl_seconds)
        return count

    async def close(self) -> None:
        await self._client.aclose()


def create_cache_store(config: "BaseConfig") -> CacheStore:
    """Pick the cache backend from configuration."""
    logger = get_logger("gateway.cache")

    if config.redis_url:
        logger.info("Using Redis cache store")
        return RedisCacheStore(config.redis_url)

    if config.upstash_redis_rest_url and config.upstash_redis_rest_token:
        logger.info("Using Upstash REST cache store")
        return UpstashRestCacheStore(config.upstash_redis_rest_url, config.upstash_redis_rest_token)

    logger.info("Using local in-process cache store")
    return LocalCacheStore()


__all__ = [
    "CacheStore",
    "LocalCacheStore",
    "RedisCacheStore",
    "UpstashRestCacheStore",
    "create_cache_store",
]
