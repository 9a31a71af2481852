from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from redis.asyncio import BlockingConnectionPool, Redis

from tunestream.metadata import MetadataBackend

logger = logging.getLogger(__name__)


@dataclass
class RedisMetadataBackend(MetadataBackend):
    """Catalogue records and descriptor cache entries in a shared redis.

    Every key is namespaced with `prefix` so the service can share a
    database with other applications.
    """

    redis: Redis
    prefix: str = "tunestream:"

    @classmethod
    @asynccontextmanager
    async def connect(cls, dsn: str, prefix: str = "tunestream:") -> AsyncIterator[RedisMetadataBackend]:
        pool = BlockingConnectionPool.from_url(dsn)  # type: ignore
        logger.info(f"Connected metadata backend to {pool.connection_kwargs.get('host')}")
        try:
            yield cls(Redis(connection_pool=pool), prefix)
        finally:
            await pool.aclose()

    async def get(self, key: str) -> bytes | None:
        return await self.redis.get(self.prefix + key)  # type: ignore

    async def put(self, key: str, value: bytes, ttl: float | None = None) -> None:
        # PX takes whole milliseconds and rejects 0
        px = max(1, int(ttl * 1000)) if ttl is not None else None
        await self.redis.set(self.prefix + key, value, px=px)  # type: ignore

    async def delete(self, key: str) -> None:
        await self.redis.delete(self.prefix + key)  # type: ignore
