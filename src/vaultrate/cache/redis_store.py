"""Redis cache store via redis.asyncio.

The latest value lives in a plain string key; the hourly history lives in
a sorted set whose score is the hour-aligned timestamp and whose member is
the JSON payload.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from vaultrate.cache.store import CacheStore
from vaultrate.config import CacheSettings
from vaultrate.exceptions import ConnectivityError
from vaultrate.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RedisCacheStore(CacheStore):
    """Concrete cache store backed by a single Redis database."""

    def __init__(self, settings: CacheSettings, client: Redis | None = None) -> None:
        self._settings = settings
        self._redis: Redis = client or Redis.from_url(
            settings.redis_url, decode_responses=True
        )

    async def _run(
        self, operation: str, awaitable: Awaitable[T], timeout: float | None = None
    ) -> T:
        """Await a Redis call under a timeout, mapping failures to ConnectivityError."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self._settings.timeout)
        except asyncio.TimeoutError as exc:
            raise ConnectivityError(f"redis {operation} timed out") from exc
        except RedisError as exc:
            raise ConnectivityError(f"redis {operation} failed: {exc}") from exc

    async def ping(self) -> None:
        await self._run("ping", self._redis.ping())
        logger.info("redis_connected", url=self._settings.redis_url)

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("redis_connection_closed")

    async def get_value(self, key: str) -> str | None:
        return await self._run("get", self._redis.get(key))

    async def set_value(self, key: str, value: str) -> None:
        await self._run("set", self._redis.set(key, value))

    async def add_scored(self, key: str, member: str, score: int) -> None:
        await self._run("zadd", self._redis.zadd(key, {member: score}))

    async def replace_at_score(self, key: str, member: str, score: int) -> None:
        async def _transaction() -> list[Any]:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, score, score)
                pipe.zadd(key, {member: score})
                return await pipe.execute()

        await self._run("replace_at_score", _transaction())

    async def range_by_score(self, key: str, min_score: int, max_score: int) -> list[str]:
        return await self._run(
            "zrangebyscore",
            self._redis.zrangebyscore(key, min_score, max_score),
            self._settings.range_timeout,
        )

    async def remove_below_score(self, key: str, cutoff: int) -> int:
        # "(" makes the upper bound exclusive
        return await self._run(
            "zremrangebyscore",
            self._redis.zremrangebyscore(key, "-inf", f"({cutoff}"),
            self._settings.range_timeout,
        )

    async def last_scored(self, key: str) -> tuple[str, int] | None:
        rows = await self._run(
            "zrevrange", self._redis.zrevrange(key, 0, 0, withscores=True)
        )
        if not rows:
            return None
        member, score = rows[0]
        return member, int(score)
