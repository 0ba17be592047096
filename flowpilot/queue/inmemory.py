"""In-memory run queue."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import List, Optional, Tuple

from ..contracts import RunRequest
from .base import BaseRunQueue


class InMemoryRunQueue(BaseRunQueue):
    """Heap-ordered queue for a single process; getters wait on a condition."""

    def __init__(self) -> None:
        self._heap: List[Tuple[int, int, RunRequest]] = []
        self._counter = itertools.count()
        self._condition = asyncio.Condition()

    async def put(self, request: RunRequest) -> None:
        async with self._condition:
            heapq.heappush(self._heap, (request.priority, next(self._counter), request))
            self._condition.notify()

    async def get(self, timeout: Optional[float] = None) -> Optional[RunRequest]:
        async with self._condition:
            try:
                await asyncio.wait_for(
                    self._condition.wait_for(lambda: bool(self._heap)), timeout
                )
            except asyncio.TimeoutError:
                return None
            return heapq.heappop(self._heap)[2]

    async def remove(self, job_id: str) -> bool:
        async with self._condition:
            for index, (_, _, request) in enumerate(self._heap):
                if request.job_id == job_id:
                    self._heap.pop(index)
                    heapq.heapify(self._heap)
                    return True
        return False

    async def size(self) -> int:
        return len(self._heap)
