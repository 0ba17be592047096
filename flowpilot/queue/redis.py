"""Redis-backed run queue for cross-process workers."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from ..constants import REDIS_KEY_PREFIX
from ..contracts import RunRequest
from .base import BaseRunQueue

# Score = priority * _PRIORITY_SPAN + sequence keeps FIFO within a priority.
_PRIORITY_SPAN = 10**12


class RedisRunQueue(BaseRunQueue):
    """Sorted-set queue; ``BZPOPMIN`` blocks until a request is available."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        name: str = "runs",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key = f"{REDIS_KEY_PREFIX}:{name}"
        self._seq_key = f"{self.key}:seq"
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def put(self, request: RunRequest) -> None:
        client = await self._client()
        seq = await client.incr(self._seq_key)
        await client.zadd(self.key, {request.to_json(): request.priority * _PRIORITY_SPAN + seq})

    async def get(self, timeout: Optional[float] = None) -> Optional[RunRequest]:
        client = await self._client()
        # redis treats 0 as "block forever"
        result = await client.bzpopmin(self.key, timeout=0 if timeout is None else max(timeout, 0.01))
        if not result:
            return None
        _, member, _ = result
        return RunRequest.from_json(member)

    async def remove(self, job_id: str) -> bool:
        client = await self._client()
        for member in await client.zrange(self.key, 0, -1):
            if RunRequest.from_json(member).job_id == job_id:
                return bool(await client.zrem(self.key, member))
        return False

    async def size(self) -> int:
        client = await self._client()
        return int(await client.zcard(self.key))
