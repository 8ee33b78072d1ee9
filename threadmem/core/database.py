import json
from typing import Optional, Tuple
import asyncpg
import redis.asyncio as redis
from threadmem.core.config import settings
from threadmem.core.logger import Logger

logger = Logger("Database")

class Database:
    def __init__(self):
        self.pool: asyncpg.Pool = None
        self.redis: redis.Redis = None

    async def connect(self):
        # Postgres
        if settings.DATABASE_URL:
            try:
                self.pool = await asyncpg.create_pool(settings.DATABASE_URL)
                logger.info("✅ Connected to PostgreSQL")
            except Exception as e:
                logger.error("Failed to connect to PostgreSQL", e)

        # Redis
        if settings.REDIS_URL:
            try:
                self.redis = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
                await self.redis.ping()
                logger.info("✅ Connected to Redis")
            except Exception as e:
                logger.error("Failed to connect to Redis", e)
                self.redis = None

    async def disconnect(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Closed PostgreSQL connection")
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Closed Redis connection")

db = Database()


# Versioned write: compare and set in one round trip
SET_IF_NEWER_SCRIPT = """
local current = redis.call("HGET", KEYS[1], "version")
if current and tonumber(current) >= tonumber(ARGV[1]) then
    return 0
end
redis.call("HSET", KEYS[1], "version", ARGV[1], "value", ARGV[2])
if tonumber(ARGV[3]) > 0 then
    redis.call("EXPIRE", KEYS[1], ARGV[3])
end
return 1
"""


class CacheService:
    """Redis cache wrapper with convenience methods."""

    def __init__(self, redis_client):
        self.redis = redis_client

    async def get(self, key: str) -> str:
        if not self.redis:
            return None
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: int = None):
        if not self.redis:
            return
        if ttl:
            await self.redis.setex(key, ttl, value)
        else:
            await self.redis.set(key, value)

    async def delete(self, key: str):
        if not self.redis:
            return
        await self.redis.delete(key)

    async def get_json(self, key: str):
        data = await self.get(key)
        return json.loads(data) if data else None

    async def set_json(self, key: str, value, ttl: int = None):
        await self.set(key, json.dumps(value), ttl)

    async def set_if_newer(self, key: str, version: int, value: str, ttl: int = None) -> bool:
        """Store value under key unless a same or newer version is already cached."""
        if not self.redis:
            return False
        stored = await self.redis.eval(SET_IF_NEWER_SCRIPT, 1, key, version, value, ttl or 0)
        return bool(stored)

    async def get_versioned(self, key: str) -> Optional[Tuple[int, str]]:
        if not self.redis:
            return None
        data = await self.redis.hgetall(key)
        if not data or "version" not in data:
            return None
        return int(data["version"]), data.get("value", "")


def get_cache() -> CacheService:
    return CacheService(db.redis)
