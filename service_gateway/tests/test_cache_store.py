"""
Unit tests for the Gateway cache stores.
"""

import asyncio
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import StoreUnavailable
from service_gateway.app.caching.store import (
    LocalCacheStore,
    RedisCacheStore,
    UpstashRestCacheStore,
    create_cache_store,
)


class TestLocalCacheStore:
    """Test cases for LocalCacheStore."""

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, local_store):
        assert await local_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_value_visible_until_expiry(self, local_store, clock):
        """Entries are visible up to expires_at and absent just after."""
        await local_store.set("k", {"a": 1}, 60)

        clock.advance(60 - 0.001)
        assert await local_store.get("k") == {"a": 1}

        clock.advance(0.002)
        assert await local_store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_overwrites(self, local_store):
        await local_store.set("k", "first", 60)
        await local_store.set("k", "second", 60)

        assert await local_store.get("k") == "second"

    @pytest.mark.asyncio
    async def test_values_are_copied(self, local_store):
        """Mutating a value after set or get does not leak into the store."""
        value = {"items": [1]}
        await local_store.set("k", value, 60)
        value["items"].append(2)

        fetched = await local_store.get("k")
        fetched["items"].append(3)

        assert await local_store.get("k") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_increment_counts_up(self, local_store):
        results = [await local_store.increment_with_ttl("rl:x", 60) for _ in range(5)]

        assert results == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_increment_does_not_extend_ttl(self, local_store, clock):
        """Only the increment that creates the key sets its expiry."""
        first_call = clock.now
        await local_store.increment_with_ttl("rl:x", 60)

        clock.advance(30)
        assert await local_store.increment_with_ttl("rl:x", 60) == 2
        assert local_store.expires_at("rl:x") == first_call + 60

        clock.advance(31)
        assert await local_store.get("rl:x") is None
        assert await local_store.increment_with_ttl("rl:x", 60) == 1
        assert local_store.expires_at("rl:x") == clock.now + 60

    def test_increment_is_atomic_across_threads(self, local_store):
        """Concurrent increments from worker threads never hand out the same count."""
        threads, per_thread = 8, 250
        results = []
        results_lock = threading.Lock()

        def worker():
            loop = asyncio.new_event_loop()
            try:
                counts = [
                    loop.run_until_complete(local_store.increment_with_ttl("rl:shared", 60))
                    for _ in range(per_thread)
                ]
            finally:
                loop.close()
            with results_lock:
                results.extend(counts)

        with ThreadPoolExecutor(max_workers=threads) as pool:
            for future in [pool.submit(worker) for _ in range(threads)]:
                future.result()

        assert sorted(results) == list(range(1, threads * per_thread + 1))

    @pytest.mark.asyncio
    async def test_increment_is_atomic_across_tasks(self, local_store):
        results = await asyncio.gather(*[local_store.increment_with_ttl("rl:shared", 60) for _ in range(50)])

        assert sorted(results) == list(range(1, 51))

    @pytest.mark.asyncio
    async def test_purge_expired(self, local_store, clock):
        await local_store.set("short", 1, 10)
        await local_store.set("long", 2, 100)

        clock.advance(50)

        assert local_store.purge_expired() == 1
        assert await local_store.get("long") == 2


class TestRedisCacheStore:
    """Test cases for RedisCacheStore."""

    @pytest.fixture
    def mock_redis(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, mock_redis):
        return RedisCacheStore("redis://localhost:6379/0", client=mock_redis)

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, store, mock_redis):
        mock_redis.get.return_value = b'{"status": 201, "body": "{}"}'

        assert await store.get("idem:deliveries:k1") == {"status": 201, "body": "{}"}

    @pytest.mark.asyncio
    async def test_get_returns_raw_string_when_not_json(self, store, mock_redis):
        mock_redis.get.return_value = b"plain-token"

        assert await store.get("k") == "plain-token"

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_redis):
        mock_redis.get.return_value = None

        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_serializes_and_sets_expiry(self, store, mock_redis):
        await store.set("token:uber", {"token": "abc", "exp": 10}, 3570)

        mock_redis.set.assert_awaited_once_with(
            "token:uber", json.dumps({"token": "abc", "exp": 10}), ex=3570
        )

    @pytest.mark.asyncio
    async def test_set_keeps_strings_verbatim(self, store, mock_redis):
        await store.set("k", "raw", 5)

        mock_redis.set.assert_awaited_once_with("k", "raw", ex=5)

    @pytest.mark.asyncio
    async def test_first_increment_sets_expiry(self, store, mock_redis):
        mock_redis.incr.return_value = 1

        assert await store.increment_with_ttl("rl:ip:1.2.3.4", 60) == 1
        mock_redis.expire.assert_awaited_once_with("rl:ip:1.2.3.4", 60)

    @pytest.mark.asyncio
    async def test_later_increments_leave_expiry(self, store, mock_redis):
        mock_redis.incr.return_value = 7

        assert await store.increment_with_ttl("rl:ip:1.2.3.4", 60) == 7
        mock_redis.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_raises_store_unavailable(self, store, mock_redis):
        mock_redis.incr.side_effect = RedisConnectionError("Connection refused")

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment_with_ttl("rl:x", 60)

        assert exc_info.value.details["backend"] == "redis"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_get_error_is_not_treated_as_absent(self, store, mock_redis):
        mock_redis.get.side_effect = OSError("network down")

        with pytest.raises(StoreUnavailable):
            await store.get("k")


class TestUpstashRestCacheStore:
    """Test cases for UpstashRestCacheStore."""

    @staticmethod
    def _store(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return UpstashRestCacheStore("https://example.upstash.io", "rest-token", client=client)

    @pytest.mark.asyncio
    async def test_increment_sends_expire_on_first_count(self):
        commands = []

        def handler(request):
            assert request.headers["Authorization"] == "Bearer rest-token"
            command = json.loads(request.content)
            commands.append(command)
            if command[0] == "INCR":
                return httpx.Response(200, json={"result": 1})
            return httpx.Response(200, json={"result": 1})

        store = self._store(handler)

        assert await store.increment_with_ttl("rl:x", 60) == 1
        assert commands == [["INCR", "rl:x"], ["EXPIRE", "rl:x", 60]]

    @pytest.mark.asyncio
    async def test_increment_skips_expire_after_first(self):
        commands = []

        def handler(request):
            commands.append(json.loads(request.content))
            return httpx.Response(200, json={"result": 4})

        store = self._store(handler)

        assert await store.increment_with_ttl("rl:x", 60) == 4
        assert commands == [["INCR", "rl:x"]]

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        data = {}

        def handler(request):
            command = json.loads(request.content)
            if command[0] == "SET":
                data[command[1]] = command[2]
                assert command[3:] == ["EX", 300]
                return httpx.Response(200, json={"result": "OK"})
            return httpx.Response(200, json={"result": data.get(command[1])})

        store = self._store(handler)
        await store.set("idem:deliveries:k1", {"status": 201, "body": "{}"}, 300)

        assert await store.get("idem:deliveries:k1") == {"status": 201, "body": "{}"}
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_error_payload_raises_store_unavailable(self):
        def handler(request):
            return httpx.Response(400, json={"error": "WRONGPASS invalid password"})

        store = self._store(handler)

        with pytest.raises(StoreUnavailable):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_transport_failure_raises_store_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = self._store(handler)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment_with_ttl("rl:x", 60)

        assert exc_info.value.details["backend"] == "upstash"


    @pytest.mark.asyncio
    async def test_non_json_reply_is_not_a_miss(self):
        """A proxy page in place of a command reply must not read as an absent key."""
        def handler(request):
            return httpx.Response(200, text="<html>proxy</html>")

        store = self._store(handler)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.get("idem:deliveries:abc")

        assert exc_info.value.details == {"backend": "upstash", "operation": "GET", "status_code": 200}

    @pytest.mark.asyncio
    async def test_non_json_reply_on_increment_raises_store_unavailable(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy</html>")

        store = self._store(handler)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment_with_ttl("rl:x", 60)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [[1, 2], {"ok": True}])
    async def test_reply_without_result_raises_store_unavailable(self, payload):
        def handler(request):
            return httpx.Response(200, json=payload)

        store = self._store(handler)

        with pytest.raises(StoreUnavailable):
            await store.get("token:uber")

    @pytest.mark.asyncio
    async def test_non_integer_count_raises_store_unavailable(self):
        def handler(request):
            return httpx.Response(200, json={"result": None})

        store = self._store(handler)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment_with_ttl("rl:x", 60)

        assert exc_info.value.details["operation"] == "INCR"


class TestCreateCacheStore:
    """Backend selection from configuration."""

    def test_defaults_to_local(self, gateway_settings):
        assert isinstance(create_cache_store(gateway_settings), LocalCacheStore)

    def test_redis_url_selects_redis(self, gateway_settings):
        config = gateway_settings.model_copy(update={"redis_url": "redis://cache:6379/0"})

        store = create_cache_store(config)

        assert isinstance(store, RedisCacheStore)
        assert store.redis_url == "redis://cache:6379/0"

    def test_upstash_requires_url_and_token(self, gateway_settings):
        url_only = gateway_settings.model_copy(update={"upstash_redis_rest_url": "https://example.upstash.io"})
        both = url_only.model_copy(update={"upstash_redis_rest_token": "rest-token"})

        assert isinstance(create_cache_store(url_only), LocalCacheStore)
        assert isinstance(create_cache_store(both), UpstashRestCacheStore)
