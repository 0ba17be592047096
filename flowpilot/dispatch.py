"""Run dispatcher: the entry point for enqueuing workflow runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_PRIORITY
from .contracts import RunRequest, TriggerType
from .queue import BaseRunQueue

logger = logging.getLogger(__name__)


class RunDispatcher:
    """Service responsible for placing run requests on the queue."""

    def __init__(
        self,
        queue: BaseRunQueue,
        default_priority: int = DEFAULT_PRIORITY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._queue = queue
        self._default_priority = default_priority
        self._max_attempts = max_attempts
        self._delayed: Dict[str, asyncio.Task[None]] = {}

    @property
    def queue(self) -> BaseRunQueue:
        return self._queue

    async def enqueue(
        self, request: RunRequest, priority: Optional[int] = None, delay: float = 0
    ) -> str:
        """Queue ``request`` and return its job id.

        Args:
            request: The run to queue.
            priority: Overrides ``request.priority``; lower runs sooner.
            delay: Seconds to wait before the request becomes visible.
        """
        if priority is not None:
            request = request.model_copy(update={"priority": priority})
        if delay > 0:
            task = asyncio.create_task(self._delayed_put(request, delay))
            self._delayed[request.job_id] = task
            task.add_done_callback(lambda _: self._delayed.pop(request.job_id, None))
            logger.debug(f"Job {request.job_id} delayed by {delay:.2f}s")
        else:
            await self._queue.put(request)
            logger.debug(f"Job {request.job_id} queued with priority {request.priority}")
        return request.job_id

    async def _delayed_put(self, request: RunRequest, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._queue.put(request)

    async def dispatch_workflow(
        self,
        workflow_id: str,
        trigger_type: TriggerType = TriggerType.MANUAL,
        trigger_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> str:
        """Build a ``RunRequest`` for ``workflow_id`` and queue it.

        Returns:
            Job identifier for tracking the run.
        """
        request = RunRequest(
            workflow_id=workflow_id,
            trigger_type=trigger_type,
            trigger_data=trigger_data or {},
            user_id=user_id,
            priority=self._default_priority if priority is None else priority,
            max_attempts=self._max_attempts,
        )
        return await self.enqueue(request)

    async def cancel(self, job_id: str) -> bool:
        """Drop a queued or delayed job."""
        task = self._delayed.pop(job_id, None)
        if task is not None:
            task.cancel()
            return True
        return await self._queue.remove(job_id)

    @property
    def pending_delayed(self) -> int:
        return len(self._delayed)

    async def close(self) -> None:
        """Cancel delayed re-enqueues that have not fired yet."""
        tasks = list(self._delayed.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._delayed.clear()
