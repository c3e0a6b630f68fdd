"""
Caching package for the Gateway.

Provides the pluggable key/value store (local, Redis, Upstash REST) and the
idempotency cache layered on top of it.
"""

from .store import CacheStore, LocalCacheStore, RedisCacheStore, UpstashRestCacheStore, create_cache_store
from .idempotency import IdempotencyCache, IdempotencyRecord

__all__ = [
    "CacheStore",
    "LocalCacheStore",
    "RedisCacheStore",
    "UpstashRestCacheStore",
    "create_cache_store",
    "IdempotencyCache",
    "IdempotencyRecord",
]
