"""Redis-backed storage provider."""

import json
import re
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from gateway.errors import StorageBackendError
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

_GLOB_SPECIALS = re.compile(r"([?\[\]\\])")

# KEYS[1]: list key, ARGV[1]: encoded value, ARGV[2]: ttl seconds or 0 for none
_APPEND_IF_ABSENT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('RPUSH', KEYS[1], ARGV[1])
if tonumber(ARGV[2]) > 0 then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return 1
"""


def to_redis_glob(pattern: str | None) -> str:
    """Translate a '*'-only key pattern into a redis MATCH glob."""
    if not pattern:
        return "*"
    return _GLOB_SPECIALS.sub(r"\\\1", pattern)


class RedisStorageProvider:
    """Storage provider on top of redis.asyncio.

    Values are JSON encoded. Lists use native redis lists so appends are a
    single RPUSH followed by EXPIRE inside a MULTI/EXEC block.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None, timeout: float | None = 5.0):
        if client is None:
            if not url:
                raise ValueError("Redis URL is required when no client is supplied")
            client = redis.from_url(
                url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
            )
        self.client = client

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise StorageBackendError(f"GET {key} failed: {e}") from e
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            raise StorageBackendError(f"SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise StorageBackendError(f"DEL {key} failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(key))
        except RedisError as e:
            raise StorageBackendError(f"EXISTS {key} failed: {e}") from e

    async def keys(self, pattern: str | None = None) -> list[str]:
        match = to_redis_glob(pattern)
        try:
            return [key async for key in self.client.scan_iter(match=match)]
        except RedisError as e:
            raise StorageBackendError(f"SCAN {match} failed: {e}") from e

    async def append(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, json.dumps(value))
                if ttl_seconds is not None:
                    pipe.expire(key, ttl_seconds)
                await pipe.execute()
        except RedisError as e:
            raise StorageBackendError(f"RPUSH {key} failed: {e}") from e

    async def append_if_absent(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        try:
            created = await self.client.eval(_APPEND_IF_ABSENT, 1, key, json.dumps(value), ttl_seconds or 0)
        except RedisError as e:
            raise StorageBackendError(f"RPUSH {key} if absent failed: {e}") from e
        return bool(created)

    async def get_list(self, key: str) -> list[Any]:
        try:
            raw_items = await self.client.lrange(key, 0, -1)
        except RedisError as e:
            raise StorageBackendError(f"LRANGE {key} failed: {e}") from e
        return [json.loads(item) for item in raw_items]

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
