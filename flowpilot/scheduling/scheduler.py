"""Scheduler: registers schedules and fires due ones onto the run queue."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ..constants import DEFAULT_POLL_INTERVAL
from ..contracts import RunRequest, TriggerType
from ..dispatch import RunDispatcher
from ..errors import ScheduleBoundsExceeded, ScheduleNotFoundError, ScheduleStateError
from .calculator import calculate_next_execution, is_within_time_window
from .models import Interval, Restrictions, ScheduledTask, ScheduleSpec, ScheduleStatus
from .store import InMemoryScheduleStore, ScheduleStore

logger = logging.getLogger(__name__)

# Upper bound on occurrences skipped in one go when catching up after downtime.
_MAX_CATCH_UP = 100_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_names(model: type, values: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase aliases in ``values`` to the model's field names."""
    aliases = {f.alias: name for name, f in model.model_fields.items() if f.alias}
    return {aliases.get(key, key): value for key, value in values.items()}


class Scheduler:
    """Owns the schedule store and turns due tasks into run requests.

    Every mutation of a task runs under that task's lock, so the poll tick
    and explicit pause/resume/cancel calls never interleave on one task.
    """

    def __init__(
        self,
        store: Optional[ScheduleStore] = None,
        dispatcher: Optional[RunDispatcher] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store or InMemoryScheduleStore()
        self._dispatcher = dispatcher
        self.poll_interval = poll_interval
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._stop_event = asyncio.Event()
        self._running = False

    # ------------------------------------------------------------------
    # Registration
    async def create_schedule(
        self,
        name: str,
        workflow_id: str,
        *,
        execute_at: Optional[datetime] = None,
        interval: Optional[Interval | Dict[str, Any]] = None,
        cron: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        timezone: Optional[str] = None,
        restrictions: Optional[Restrictions | Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScheduledTask:
        """Register a schedule.

        ``execute_at`` makes it one-shot and ``cron`` follows a cron expression;
        otherwise it repeats every ``interval``.
        """
        if execute_at is not None:
            kind = "once"
        elif cron is not None:
            kind = "cron"
        else:
            kind = "recurring"
        spec = ScheduleSpec(
            type=kind,
            execute_at=execute_at,
            interval=interval,
            cron=cron,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
        )
        if isinstance(restrictions, dict):
            restrictions = Restrictions.model_validate(restrictions)
        task = ScheduledTask(
            name=name,
            workflow_id=workflow_id,
            schedule=spec,
            restrictions=restrictions or Restrictions(),
            data=data or {},
            metadata=metadata or {},
            created_at=self._clock(),
        )
        reference = task.created_at if kind == "cron" else spec.start_date or task.created_at
        first = calculate_next_execution(task, reference)
        if first is None:
            raise ScheduleBoundsExceeded(
                f"Schedule '{name}' has no occurrence before its end date"
            )
        task.next_execution_at = first
        await self._store.save(task)
        logger.info(f"Schedule {task.id} ({name}) created, next run at {first.isoformat()}")
        return task

    async def schedule_once(
        self,
        name: str,
        workflow_id: str,
        execute_at: datetime,
        data: Optional[Dict[str, Any]] = None,
    ) -> ScheduledTask:
        return await self.create_schedule(name, workflow_id, execute_at=execute_at, data=data)

    async def schedule_recurring(
        self,
        name: str,
        workflow_id: str,
        interval: Interval | Dict[str, Any],
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        timezone: Optional[str] = None,
        restrictions: Optional[Restrictions | Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ScheduledTask:
        return await self.create_schedule(
            name,
            workflow_id,
            interval=interval,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            restrictions=restrictions,
            data=data,
        )

    async def schedule_cron(
        self,
        name: str,
        workflow_id: str,
        cron: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        timezone: Optional[str] = None,
        restrictions: Optional[Restrictions | Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ScheduledTask:
        return await self.create_schedule(
            name,
            workflow_id,
            cron=cron,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            restrictions=restrictions,
            data=data,
        )

    # ------------------------------------------------------------------
    # Queries
    async def get(self, task_id: str) -> Optional[ScheduledTask]:
        return await self._store.get(task_id)

    async def _require(self, task_id: str) -> ScheduledTask:
        task = await self._store.get(task_id)
        if task is None:
            raise ScheduleNotFoundError(f"Schedule {task_id} not found")
        return task

    async def list_schedules(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ScheduleStatus | str] = None,
        limit: Optional[int] = None,
    ) -> List[ScheduledTask]:
        """List tasks ordered by next execution; tasks without one sort last."""
        tasks = await self._store.list_tasks()
        if workflow_id:
            tasks = [t for t in tasks if t.workflow_id == workflow_id]
        if status:
            wanted = ScheduleStatus(status)
            tasks = [t for t in tasks if t.status == wanted]
        tasks.sort(
            key=lambda t: (t.next_execution_at is None, t.next_execution_at or t.created_at)
        )
        if limit:
            tasks = tasks[:limit]
        return tasks

    async def get_due_schedules(self, as_of: Optional[datetime] = None) -> List[ScheduledTask]:
        """Active tasks whose next execution has passed and whose time window is open."""
        as_of = as_of or self._clock()
        due = []
        for task in await self._store.list_tasks():
            if task.status != ScheduleStatus.ACTIVE or task.next_execution_at is None:
                continue
            if task.next_execution_at > as_of:
                continue
            window = task.restrictions.time_window
            if window and not is_within_time_window(as_of, window, task.schedule.tz):
                logger.debug(f"Schedule {task.id} due but outside its time window")
                continue
            due.append(task)
        due.sort(key=lambda t: t.next_execution_at)
        return due

    async def stats(self, workflow_id: Optional[str] = None) -> Dict[str, Any]:
        tasks = await self._store.list_tasks()
        if workflow_id:
            tasks = [t for t in tasks if t.workflow_id == workflow_id]
        counts = {status.value: 0 for status in ScheduleStatus}
        for task in tasks:
            counts[task.status.value] += 1
        upcoming = [
            t.next_execution_at
            for t in tasks
            if t.status == ScheduleStatus.ACTIVE and t.next_execution_at
        ]
        next_in = None
        if upcoming:
            next_in = (min(upcoming) - self._clock()).total_seconds()
        return {
            "total": len(tasks),
            **counts,
            "total_executions": sum(t.execution_count for t in tasks),
            "next_execution_in": next_in,
        }

    # ------------------------------------------------------------------
    # Mutations
    async def update(
        self,
        task_id: str,
        *,
        name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        schedule: Optional[Dict[str, Any]] = None,
        restrictions: Optional[Restrictions | Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScheduledTask:
        """Patch a task. Changing ``schedule`` recomputes the next execution."""
        async with self._locks[task_id]:
            task = await self._require(task_id)
            if task.status.terminal:
                raise ScheduleStateError(
                    f"Cannot update schedule with status {task.status.value}"
                )
            if name:
                task.name = name
            if data is not None:
                task.data = data
            if restrictions is not None:
                task.restrictions = Restrictions.model_validate(restrictions)
            if metadata:
                task.metadata = {**task.metadata, **metadata}
            if schedule:
                merged = task.schedule.model_dump()
                merged.update(_field_names(ScheduleSpec, schedule))
                task.schedule = ScheduleSpec.model_validate(merged)
                task.next_execution_at = calculate_next_execution(task, self._clock())
                if task.next_execution_at is None:
                    raise ScheduleBoundsExceeded(
                        f"Schedule {task_id} has no occurrence before its end date"
                    )
            await self._store.save(task)
        logger.info(f"Schedule {task_id} updated")
        return task

    async def pause(self, task_id: str) -> ScheduledTask:
        async with self._locks[task_id]:
            task = await self._require(task_id)
            if task.status != ScheduleStatus.ACTIVE:
                raise ScheduleStateError(
                    f"Cannot pause schedule with status {task.status.value}"
                )
            task.status = ScheduleStatus.PAUSED
            await self._store.save(task)
        logger.info(f"Schedule {task_id} paused")
        return task

    async def resume(self, task_id: str) -> ScheduledTask:
        async with self._locks[task_id]:
            task = await self._require(task_id)
            if task.status != ScheduleStatus.PAUSED:
                raise ScheduleStateError(
                    f"Cannot resume schedule with status {task.status.value}"
                )
            task.next_execution_at = calculate_next_execution(task, self._clock())
            task.status = (
                ScheduleStatus.ACTIVE
                if task.next_execution_at is not None
                else ScheduleStatus.COMPLETED
            )
            await self._store.save(task)
        logger.info(f"Schedule {task_id} resumed, next run at {task.next_execution_at}")
        return task

    async def cancel(self, task_id: str) -> ScheduledTask:
        async with self._locks[task_id]:
            task = await self._require(task_id)
            if task.status.terminal:
                raise ScheduleStateError(
                    f"Cannot cancel schedule with status {task.status.value}"
                )
            task.status = ScheduleStatus.CANCELLED
            task.next_execution_at = None
            await self._store.save(task)
        logger.info(f"Schedule {task_id} cancelled")
        return task

    async def mark_executed(
        self, task_id: str, executed_at: Optional[datetime] = None
    ) -> ScheduledTask:
        async with self._locks[task_id]:
            task = await self._require(task_id)
            return await self._mark_executed(task, executed_at or self._clock())

    async def _mark_executed(self, task: ScheduledTask, now: datetime) -> ScheduledTask:
        task.execution_count += 1
        task.last_executed_at = now
        cap = task.restrictions.max_executions

        if cap and task.execution_count >= cap:
            task.status = ScheduleStatus.COMPLETED
            task.next_execution_at = None
            logger.info(f"Schedule {task.id} completed after {task.execution_count} executions")
        elif task.schedule.type == "once":
            task.status = ScheduleStatus.COMPLETED
            task.next_execution_at = None
            logger.info(f"One-time schedule {task.id} completed")
        else:
            task.next_execution_at = self._advance(task, now)
            if task.next_execution_at is None:
                task.status = ScheduleStatus.COMPLETED
                logger.info(f"Schedule {task.id} completed (end date reached)")
        await self._store.save(task)
        return task

    def _advance(self, task: ScheduledTask, now: datetime) -> Optional[datetime]:
        """Next occurrence strictly after ``now``, stepping from the last due time."""
        candidate = calculate_next_execution(task, task.next_execution_at or now)
        skipped = 0
        while candidate is not None and candidate <= now:
            skipped += 1
            if skipped > _MAX_CATCH_UP:
                return calculate_next_execution(task, now)
            candidate = calculate_next_execution(task, candidate)
        if skipped:
            logger.info(f"Schedule {task.id} skipped {skipped} missed occurrence(s)")
        return candidate

    async def cleanup(self, older_than_days: int = 30) -> int:
        """Delete completed/cancelled tasks created before the cutoff."""
        cutoff = self._clock() - timedelta(days=older_than_days)
        removed = 0
        for task in await self._store.list_tasks():
            if task.status.terminal and task.created_at < cutoff:
                async with self._locks[task.id]:
                    if await self._store.delete(task.id):
                        removed += 1
                self._locks.pop(task.id, None)
        logger.info(f"Removed {removed} old schedule(s)")
        return removed

    # ------------------------------------------------------------------
    # Firing
    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Fire every due task once; return the enqueued job ids."""
        if self._dispatcher is None:
            raise RuntimeError("Scheduler has no dispatcher to enqueue runs")
        now = now or self._clock()
        job_ids = []
        for due in await self.get_due_schedules(now):
            async with self._locks[due.id]:
                # state may have changed while waiting for the lock
                task = await self._store.get(due.id)
                if (
                    task is None
                    or task.status != ScheduleStatus.ACTIVE
                    or task.next_execution_at is None
                    or task.next_execution_at > now
                ):
                    continue
                request = RunRequest(
                    workflow_id=task.workflow_id,
                    trigger_type=TriggerType.SCHEDULE,
                    trigger_data={
                        "scheduleId": task.id,
                        "scheduledAt": task.next_execution_at.isoformat(),
                        "data": task.data,
                    },
                )
                job_ids.append(await self._dispatcher.enqueue(request))
                logger.info(f"Schedule {task.id} fired job {request.job_id}")
                await self._mark_executed(task, now)
        return job_ids

    async def start(self) -> None:
        """Poll for due tasks every ``poll_interval`` seconds until ``stop``."""
        self._running = True
        self._stop_event.clear()
        logger.info(f"Scheduler started (poll interval {self.poll_interval}s)")
        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Scheduler tick failed")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Scheduler stopped")

    async def stop(self) -> None:
        self._stop_event.set()

    @property
    def running(self) -> bool:
        return self._running
