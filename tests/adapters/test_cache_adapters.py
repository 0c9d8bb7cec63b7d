"""
Tests for the cache adapters.
"""
import json

import pytest

from backend.adapters.cache import MAX_TTL, MemoryCacheAdapter
from backend.adapters.redis_cache import RedisCacheAdapter, UpstashCacheAdapter
from backend.adapters.types import build_key, clamp_ttl
from backend.core.exceptions import ConfigurationError


class TestKeyHelpers:
    """Tests for key composition and TTL clamping."""

    def test_prefix_and_key_joined_with_colon(self):
        assert build_key("abc", prefix="chat") == "chat:abc"

    def test_key_without_prefix(self):
        assert build_key("abc") == "abc"

    def test_unsafe_characters_replaced(self):
        assert build_key("user profile/1?x", prefix="vector search") == "vector_search:user_profile_1_x"

    def test_allowed_characters_kept(self):
        assert build_key("a-b_c:D9") == "a-b_c:D9"

    def test_ttl_defaults_when_missing(self):
        assert clamp_ttl(None, default_ttl=3600, max_ttl=86400) == 3600

    def test_ttl_clamped_to_bounds(self):
        assert clamp_ttl(0, default_ttl=3600, max_ttl=86400) == 1
        assert clamp_ttl(-50, default_ttl=3600, max_ttl=86400) == 1
        assert clamp_ttl(10**9, default_ttl=3600, max_ttl=86400) == 86400


class TestMemoryCacheAdapter:
    """Tests for the in-process cache."""

    @pytest.fixture
    def cache(self, clock):
        return MemoryCacheAdapter(clock=clock)

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache):
        await cache.set("k", {"answer": 42}, prefix="chat")

        assert await cache.get("k", prefix="chat") == {"answer": 42}

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, cache):
        assert await cache.get("nope") is None

    @pytest.mark.asyncio
    async def test_prefix_is_part_of_key(self, cache):
        await cache.set("k", "value", prefix="chat")

        assert await cache.get("k") is None
        assert await cache.get("k", prefix="vector") is None

    @pytest.mark.asyncio
    async def test_expired_entry_returns_none_and_is_removed(self, cache, clock):
        await cache.set("k", "value", ttl=60)
        assert await cache.count() == 1

        clock.advance(61)

        assert await cache.get("k") is None
        assert await cache.count() == 0

    @pytest.mark.asyncio
    async def test_entry_still_valid_at_ttl_boundary(self, cache, clock):
        await cache.set("k", "value", ttl=60)

        clock.advance(60)

        assert await cache.get("k") == "value"

    @pytest.mark.asyncio
    async def test_ttl_is_clamped_in_envelope(self, cache):
        await cache.set("k", "value", ttl=10**9)

        raw = json.loads(await cache._read("k"))
        assert raw["ttl"] == MAX_TTL
        assert raw["data"] == "value"
        assert "timestamp" in raw

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("k", "value", prefix="p")
        await cache.delete("k", prefix="p")

        assert await cache.get("k", prefix="p") is None

    @pytest.mark.asyncio
    async def test_clear_by_prefix_only_touches_prefix(self, cache):
        await cache.set("a", 1, prefix="chat")
        await cache.set("b", 2, prefix="chat")
        await cache.set("c", 3, prefix="vector")
        await cache.set("chatty", 4)

        await cache.clear_by_prefix("chat")

        assert await cache.get("a", prefix="chat") is None
        assert await cache.get("b", prefix="chat") is None
        assert await cache.get("c", prefix="vector") == 3
        assert await cache.get("chatty") == 4

    @pytest.mark.asyncio
    async def test_count_by_prefix(self, cache):
        await cache.set("a", 1, prefix="chat")
        await cache.set("b", 2, prefix="chat")
        await cache.set("c", 3, prefix="vector")

        assert await cache.count("chat") == 2
        assert await cache.count("vector") == 1
        assert await cache.count() == 3

    @pytest.mark.asyncio
    async def test_purge_expired(self, cache, clock):
        await cache.set("short", 1, ttl=10)
        await cache.set("long", 2, ttl=1000)

        clock.advance(11)
        removed = await cache.purge_expired()

        assert removed == 1
        assert await cache.count() == 1
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_purge_limited_to_prefixes(self, cache, clock):
        await cache.set("a", 1, ttl=10, prefix="chat")
        await cache.set("b", 2, ttl=10, prefix="other")

        clock.advance(11)
        removed = await cache.purge_expired(["chat"])

        assert removed == 1
        assert await cache.count("other") == 1

    @pytest.mark.asyncio
    async def test_purge_keeps_unparseable_values(self, cache):
        cache._store["foreign"] = "not json"

        assert await cache.purge_expired() == 0
        assert "foreign" in cache._store

    @pytest.mark.asyncio
    async def test_malformed_entry_is_discarded(self, cache):
        cache._store["bad"] = "not json"

        assert await cache.get("bad") is None
        assert "bad" not in cache._store

    @pytest.mark.asyncio
    async def test_unserializable_value_is_swallowed(self, cache):
        await cache.set("k", object())

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.set("k", "x" * 4096)

        stats = await cache.get_stats()

        assert stats.total_keys == 1
        assert stats.connected is True
        assert stats.memory_usage.endswith("KB")


class TestRedisCacheAdapter:
    """Tests for the Redis cache using a fake client."""

    @pytest.fixture
    def cache(self, fake_redis, clock):
        return RedisCacheAdapter(url="redis://localhost:6379/0", client=fake_redis, clock=clock)

    @pytest.mark.asyncio
    async def test_set_uses_native_ttl(self, cache, fake_redis):
        await cache.set("k", [1, 2, 3], ttl=120, prefix="vector")

        assert fake_redis.ttls["vector:k"] == 120
        assert await cache.get("k", prefix="vector") == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_envelope_expiry_checked_on_read(self, cache, fake_redis, clock):
        await cache.set("k", "value", ttl=30)

        clock.advance(31)

        assert await cache.get("k") is None
        assert "k" not in fake_redis.strings

    @pytest.mark.asyncio
    async def test_clear_by_prefix(self, cache, fake_redis):
        await cache.set("a", 1, prefix="chat")
        await cache.set("b", 2, prefix="vector")

        await cache.clear_by_prefix("chat")

        assert await cache.get("a", prefix="chat") is None
        assert await cache.get("b", prefix="vector") == 2
        assert list(fake_redis.strings) == ["vector:b"]

    @pytest.mark.asyncio
    async def test_sweep_leaves_foreign_and_hash_keys(self, cache, fake_redis, clock):
        fake_redis.strings["session:user42"] = "opaque"
        fake_redis.hashes["sam_opportunities:opp-1"] = {"title": "Cloud"}
        await cache.set("old", "x", ttl=10, prefix="chat")
        await cache.set("fresh", "y", ttl=1000, prefix="chat")

        clock.advance(11)
        removed = await cache.purge_expired()

        assert removed == 1
        assert "chat:old" not in fake_redis.strings
        assert fake_redis.strings["session:user42"] == "opaque"
        assert "sam_opportunities:opp-1" in fake_redis.hashes
        assert "chat:fresh" in fake_redis.strings

    @pytest.mark.asyncio
    async def test_sweep_scans_only_given_prefixes(self, cache, fake_redis, clock):
        await cache.set("old", "x", ttl=10, prefix="chat")
        await cache.set("old", "x", ttl=10, prefix="sessions")

        clock.advance(11)
        removed = await cache.purge_expired(["chat", "vector"])

        assert removed == 1
        assert "sessions:old" in fake_redis.strings

    @pytest.mark.asyncio
    async def test_failures_never_raise(self, cache, fake_redis):
        fake_redis.fail = True

        await cache.set("k", "value")
        await cache.delete("k")
        await cache.clear_by_prefix("chat")
        assert await cache.purge_expired() == 0
        assert await cache.get("k") is None
        assert await cache.is_connected() is False

    @pytest.mark.asyncio
    async def test_stats_when_unreachable(self, cache, fake_redis):
        fake_redis.fail = True

        stats = await cache.get_stats()

        assert stats.connected is False
        assert stats.total_keys == 0

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.set("k", "value")

        stats = await cache.get_stats()

        assert stats.total_keys == 1
        assert stats.memory_usage == "1.00M"
        assert stats.connected is True

    @pytest.mark.asyncio
    async def test_close_releases_client(self, cache, fake_redis):
        await cache.close()

        assert fake_redis.closed is True


class TestUpstashCacheAdapter:
    """Tests for the managed Upstash adapter."""

    def test_requires_password(self):
        with pytest.raises(ConfigurationError):
            UpstashCacheAdapter(url="rediss://example.upstash.io:6379")

    def test_requires_url(self):
        with pytest.raises(ConfigurationError):
            UpstashCacheAdapter(password="secret")

    @pytest.mark.asyncio
    async def test_stats_report_managed_memory(self, fake_redis):
        cache = UpstashCacheAdapter(url="rediss://example.upstash.io:6379", password="secret", client=fake_redis)

        stats = await cache.get_stats()

        assert stats.memory_usage == "managed by upstash"
        assert stats.connected is True
