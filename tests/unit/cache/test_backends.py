"""Tests for cache backend stores."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from forooshyar.cache import backends
from forooshyar.cache.backends import InMemoryBackend, RedisBackend, create_backend
from forooshyar.cache.errors import BackendUnavailableError
from forooshyar.config import Settings


class TestInMemoryBackend:
    """Test the dict-backed store."""

    async def test_set_and_get(self, backend: InMemoryBackend) -> None:
        await backend.set("k", {"a": 1}, 60)
        entry = await backend.get("k")
        assert entry is not None
        assert entry.value == {"a": 1}
        assert entry.ttl == 60

    async def test_missing_key(self, backend: InMemoryBackend) -> None:
        assert await backend.get("missing") is None

    async def test_entry_expires(self, backend: InMemoryBackend, clock) -> None:
        """Entries are gone once their TTL has elapsed."""
        await backend.set("k", "v", 10)
        clock.advance(9)
        assert await backend.get("k") is not None
        clock.advance(1)
        assert await backend.get("k") is None
        assert len(backend) == 0

    async def test_delete_counts_existing(self, backend: InMemoryBackend) -> None:
        await backend.set("a", 1, 60)
        await backend.set("b", 2, 60)
        assert await backend.delete("a", "b", "c") == 2
        assert await backend.delete("a") == 0

    async def test_scan_glob(self, backend: InMemoryBackend) -> None:
        for key in ("x_products_1", "x_products_2", "x_product_1", "y_products_1"):
            await backend.set(key, 1, 60)
        assert sorted(await backend.scan("x_products_*")) == ["x_products_1", "x_products_2"]

    async def test_scan_skips_expired(self, backend: InMemoryBackend, clock) -> None:
        await backend.set("x_short", 1, 5)
        await backend.set("x_long", 1, 500)
        clock.advance(10)
        assert await backend.scan("x_*") == ["x_long"]
        assert await backend.count("x_*") == 1

    async def test_delete_pattern(self, backend: InMemoryBackend) -> None:
        for key in ("x_products_1", "x_products_2", "x_product_1"):
            await backend.set(key, 1, 60)
        assert await backend.delete_pattern("x_products_*") == 2
        assert await backend.get("x_product_1") is not None

    async def test_cleanup_expired(self, backend: InMemoryBackend, clock) -> None:
        await backend.set("a", 1, 5)
        await backend.set("b", 1, 5)
        await backend.set("c", 1, 500)
        clock.advance(6)
        assert await backend.cleanup_expired() == 2
        assert len(backend) == 1

    async def test_ping(self, backend: InMemoryBackend) -> None:
        assert await backend.ping() is True

    async def test_close_keeps_entries(self, backend: InMemoryBackend) -> None:
        """Closing a process-local store holds no connections to release."""
        await backend.set("k", 1, 60)
        await backend.close()
        assert await backend.get("k") is not None


def _scan_iter(keys: list[bytes]):
    async def scan_iter(match: str | None = None, count: int | None = None) -> AsyncIterator[bytes]:
        for key in keys:
            yield key

    return scan_iter


class TestRedisBackend:
    """Test the Redis store against a mocked client."""

    @pytest.fixture
    def client(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def redis_backend(self, client: AsyncMock) -> RedisBackend:
        return RedisBackend(client, scan_count=2)

    async def test_set_uses_setex_envelope(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        """Values are written as orjson envelopes with the TTL."""
        client.setex.return_value = True

        assert await redis_backend.set("k", [1, 2], 30) is True

        key, ttl, payload = client.setex.call_args.args
        assert key == "k"
        assert ttl == 30
        envelope = orjson.loads(payload)
        assert envelope["v"] == [1, 2]
        assert envelope["t"] == 30

    async def test_get_decodes_envelope(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.get.return_value = orjson.dumps({"v": {"name": "Shirt"}, "s": 1.5, "t": 60})

        entry = await redis_backend.get("k")

        assert entry is not None
        assert entry.value == {"name": "Shirt"}
        assert entry.stored_at == 1.5
        assert entry.ttl == 60

    async def test_get_cached_false_is_entry(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.get.return_value = orjson.dumps({"v": False, "s": 1.0, "t": 60})
        entry = await redis_backend.get("k")
        assert entry is not None
        assert entry.value is False

    async def test_get_missing(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.get.return_value = None
        assert await redis_backend.get("k") is None

    async def test_undecodable_entry_dropped(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        """Corrupt entries read as a miss and are removed."""
        client.get.return_value = b"not json"
        client.delete.return_value = 1

        assert await redis_backend.get("k") is None
        client.delete.assert_awaited_once_with("k")

    async def test_errors_are_wrapped(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.get.side_effect = RedisConnectionError("down")
        client.setex.side_effect = RedisConnectionError("down")
        client.delete.side_effect = OSError("reset")

        with pytest.raises(BackendUnavailableError):
            await redis_backend.get("k")
        with pytest.raises(BackendUnavailableError):
            await redis_backend.set("k", 1, 60)
        with pytest.raises(BackendUnavailableError):
            await redis_backend.delete("k")

    async def test_delete_nothing_skips_client(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        assert await redis_backend.delete() == 0
        client.delete.assert_not_awaited()

    async def test_delete_pattern_batches(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        """Matched keys are deleted in batches of scan_count."""
        client.scan_iter = _scan_iter([b"p_1", b"p_2", b"p_3"])
        client.delete.side_effect = [2, 1]

        assert await redis_backend.delete_pattern("p_*") == 3
        assert [call.args for call in client.delete.await_args_list] == [("p_1", "p_2"), ("p_3",)]

    async def test_scan_decodes_keys(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.scan_iter = _scan_iter([b"p_1", b"p_2"])
        assert await redis_backend.scan("p_*") == ["p_1", "p_2"]

    async def test_scan_error_wrapped(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        async def failing_scan_iter(match: str | None = None, count: int | None = None):
            raise RedisConnectionError("down")
            yield b""  # pragma: no cover

        client.scan_iter = failing_scan_iter
        with pytest.raises(BackendUnavailableError):
            await redis_backend.scan("p_*")

    async def test_cleanup_is_noop(self, redis_backend: RedisBackend) -> None:
        """Redis expires entries on its own."""
        assert await redis_backend.cleanup_expired() == 0

    async def test_ping_failure(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        client.ping.side_effect = RedisConnectionError("down")
        assert await redis_backend.ping() is False

    async def test_close_own_client(self, redis_backend: RedisBackend, client: AsyncMock) -> None:
        await redis_backend.close()
        client.aclose.assert_awaited_once()

    async def test_close_shared_pool(
        self, redis_backend: RedisBackend, client: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Closing a backend built on the pool client resets the pool."""
        monkeypatch.setattr(backends, "_redis_client", client)

        await redis_backend.close()

        client.aclose.assert_awaited_once()
        assert backends._redis_client is None


class TestCreateBackend:
    """Test backend selection from settings."""

    async def test_memory_backend(self) -> None:
        config = Settings(cache_backend="memory")
        assert isinstance(await create_backend(config), InMemoryBackend)

    async def test_redis_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        client = AsyncMock()

        async def fake_get_redis(url: str | None = None) -> AsyncMock:
            assert url == "redis://cache:6379/1"
            return client

        monkeypatch.setattr("forooshyar.cache.backends.get_redis", fake_get_redis)
        config = Settings(cache_backend="redis", redis_url="redis://cache:6379/1")

        backend = await create_backend(config)

        assert isinstance(backend, RedisBackend)
        assert backend.client is client
