"""
Unit tests for the cache wrapper.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from threadmem.core.database import CacheService, SET_IF_NEWER_SCRIPT


class TestCacheService:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_noop_without_redis(self):
        cache = CacheService(None)
        await cache.set("k", "v", ttl=10)
        assert await cache.get("k") is None
        assert await cache.get_json("k") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_setex(self):
        redis = MagicMock()
        redis.setex = AsyncMock()
        redis.set = AsyncMock()
        await CacheService(redis).set("k", "v", ttl=60)
        redis.setex.assert_awaited_once_with("k", 60, "v")
        redis.set.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_json_helpers(self):
        redis = MagicMock()
        redis.set = AsyncMock()
        redis.get = AsyncMock(return_value=json.dumps({"a": 1}))
        cache = CacheService(redis)
        await cache.set_json("k", {"a": 1})
        redis.set.assert_awaited_once_with("k", '{"a": 1}')
        assert await cache.get_json("k") == {"a": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_if_newer_runs_versioned_script(self):
        redis = MagicMock()
        redis.eval = AsyncMock(return_value=1)
        stored = await CacheService(redis).set_if_newer("k", 3, "digest", ttl=60)
        assert stored is True
        redis.eval.assert_awaited_once_with(SET_IF_NEWER_SCRIPT, 1, "k", 3, "digest", 60)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_if_newer_rejected_for_stale_version(self):
        redis = MagicMock()
        redis.eval = AsyncMock(return_value=0)
        assert await CacheService(redis).set_if_newer("k", 1, "old") is False
        assert redis.eval.await_args.args[-1] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_versioned(self):
        redis = MagicMock()
        redis.hgetall = AsyncMock(return_value={"version": "4", "value": "digest"})
        assert await CacheService(redis).get_versioned("k") == (4, "digest")

        redis.hgetall = AsyncMock(return_value={})
        assert await CacheService(redis).get_versioned("k") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_versioned_helpers_noop_without_redis(self):
        cache = CacheService(None)
        assert await cache.set_if_newer("k", 1, "v") is False
        assert await cache.get_versioned("k") is None
