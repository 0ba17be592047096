"""Worker pool draining the run queue."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, defaultdict, deque
from typing import Deque, Dict, List, Optional, Set

from .constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_INITIAL,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_PER_WORKFLOW,
)
from .contracts import RunRequest
from .dispatch import RunDispatcher
from .execute import WorkflowExecutor
from .persistence import WorkflowRun
from .queue import BaseRunQueue
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)


class WorkerPool:
    """Fixed-size pool of workers pulling run requests by priority.

    ``max_concurrent`` workers run at most one request each. A request whose
    workflow already has ``max_per_workflow`` runs in flight is held back and
    re-queued once one of them finishes. Runs that fail with a retryable error
    are re-enqueued with exponential backoff until ``max_attempts`` on the
    request is reached; permanent failures are surfaced straight away.

    ``results`` keeps the last ``results_limit`` finished runs by job id; the
    repository holds the full history.
    """

    def __init__(
        self,
        queue: BaseRunQueue,
        executor: WorkflowExecutor,
        dispatcher: Optional[RunDispatcher] = None,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        max_per_workflow: int = DEFAULT_MAX_PER_WORKFLOW,
        backoff_initial: float = DEFAULT_BACKOFF_INITIAL,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_jitter: float = 0.5,
        poll_timeout: float = 1.0,
        results_limit: int = 1000,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_per_workflow < 1:
            raise ValueError("max_per_workflow must be at least 1")
        if results_limit < 1:
            raise ValueError("results_limit must be at least 1")
        self._queue = queue
        self._executor = executor
        self._dispatcher = dispatcher or RunDispatcher(queue)
        self.max_concurrent = max_concurrent
        self.max_per_workflow = max_per_workflow
        self.backoff_initial = backoff_initial
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self._poll_timeout = poll_timeout
        self.results_limit = results_limit

        self.results: OrderedDict[str, WorkflowRun] = OrderedDict()
        self._in_flight: Dict[str, int] = defaultdict(int)
        self._deferred: Dict[str, Deque[RunRequest]] = defaultdict(deque)
        self._running_jobs: Dict[str, RunRequest] = {}
        self._workers: List[asyncio.Task[None]] = []
        self._busy: Set[int] = set()
        self._stopping = False
        self._stopped = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self, lifespan: Optional[float] = None) -> None:
        """Run the pool until ``stop`` is called or ``lifespan`` elapses."""
        if self._workers:
            raise RuntimeError("Worker pool already started")
        await self._queue.connect()
        self._stopping = False
        self._stopped.clear()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"flowpilot-worker-{index}")
            for index in range(self.max_concurrent)
        ]
        logger.info(f"Worker pool started with {self.max_concurrent} workers")
        try:
            if lifespan is not None:
                try:
                    await asyncio.wait_for(self._stopped.wait(), lifespan)
                except asyncio.TimeoutError:
                    pass
            else:
                await self._stopped.wait()
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Stop taking new requests; in-flight runs finish their work."""
        self._stopping = True
        self._stopped.set()

    async def _shutdown(self) -> None:
        self._stopping = True
        for index, task in enumerate(self._workers):
            if index not in self._busy:
                task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._busy.clear()
        # Held-back requests go back to the queue for the next pool.
        for requests in self._deferred.values():
            while requests:
                await self._queue.put(requests.popleft())
        await self._dispatcher.close()
        await self._queue.disconnect()
        logger.info("Worker pool stopped")

    async def join(self, poll: float = 0.05) -> None:
        """Wait until no request is queued, held back, delayed or running."""
        while True:
            idle = (
                not self._running_jobs
                and not any(self._deferred.values())
                and self._dispatcher.pending_delayed == 0
                and await self._queue.size() == 0
            )
            if idle:
                return
            await asyncio.sleep(poll)

    async def cancel(self, job_id: str) -> bool:
        """Cancel a job whether it is queued, held back, delayed or running.

        A running job stops before its next step; the step in progress is
        allowed to finish.
        """
        if job_id in self._running_jobs:
            return self._executor.cancel(job_id)
        for requests in self._deferred.values():
            for request in list(requests):
                if request.job_id == job_id:
                    requests.remove(request)
                    return True
        return await self._dispatcher.cancel(job_id)

    # ------------------------------------------------------------------
    # Workers
    async def _worker(self, index: int) -> None:
        while not self._stopping:
            request = await self._queue.get(timeout=self._poll_timeout)
            if request is None:
                continue
            workflow_id = request.workflow_id
            if self._in_flight[workflow_id] >= self.max_per_workflow:
                logger.debug(
                    f"Workflow {workflow_id} at its concurrency limit, holding job {request.job_id}"
                )
                self._deferred[workflow_id].append(request)
                continue
            self._busy.add(index)
            try:
                await self._process(request)
            except Exception:
                logger.exception(f"Worker {index} failed to process job {request.job_id}")
            finally:
                self._busy.discard(index)

    async def _process(self, request: RunRequest) -> None:
        workflow_id = request.workflow_id
        self._in_flight[workflow_id] += 1
        self._running_jobs[request.job_id] = request
        try:
            run = await self._executor.execute(request)
        finally:
            self._running_jobs.pop(request.job_id, None)
            self._in_flight[workflow_id] -= 1
            await self._release_deferred(workflow_id)

        self._remember(request.job_id, run)
        if run.status == "success":
            return
        if run.retryable and request.attempt < request.max_attempts:
            delay = compute_backoff(
                request.attempt,
                base=self.backoff_base,
                initial=self.backoff_initial,
                jitter=self.backoff_jitter,
            )
            logger.warning(
                f"Job {request.job_id} attempt {request.attempt}/{request.max_attempts} "
                f"failed ({run.error_type}), retrying in {delay:.2f}s"
            )
            await self._dispatcher.enqueue(request.next_attempt(), delay=delay)
        elif run.retryable:
            logger.error(
                f"Job {request.job_id} exhausted {request.max_attempts} attempts: {run.error}"
            )
        else:
            logger.error(f"Job {request.job_id} failed permanently: {run.error}")

    async def _release_deferred(self, workflow_id: str) -> None:
        held = self._deferred.get(workflow_id)
        if held:
            await self._queue.put(held.popleft())
        if not held:
            self._deferred.pop(workflow_id, None)
        if self._in_flight.get(workflow_id) == 0:
            del self._in_flight[workflow_id]

    def _remember(self, job_id: str, run: WorkflowRun) -> None:
        self.results[job_id] = run
        self.results.move_to_end(job_id)
        while len(self.results) > self.results_limit:
            self.results.popitem(last=False)

    def stats(self) -> Dict[str, object]:
        return {
            "workers": len(self._workers),
            "busy": len(self._busy),
            "running": len(self._running_jobs),
            "held": sum(len(v) for v in self._deferred.values()),
            "delayed": self._dispatcher.pending_delayed,
            "completed": len(self.results),
        }
