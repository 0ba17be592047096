"""Storage for scheduled tasks."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Protocol

from ..utils.sqlite import SQLiteBackend
from .models import ScheduledTask


class ScheduleStore(Protocol):
    """Id-keyed table of scheduled tasks owned by the scheduler."""

    async def get(self, task_id: str) -> Optional[ScheduledTask]:
        ...

    async def save(self, task: ScheduledTask) -> None:
        ...

    async def delete(self, task_id: str) -> bool:
        ...

    async def list_tasks(self) -> list[ScheduledTask]:
        ...


class InMemoryScheduleStore(ScheduleStore):
    """Keep scheduled tasks in process memory."""

    def __init__(self) -> None:
        self._tasks: Dict[str, ScheduledTask] = {}

    async def get(self, task_id: str) -> Optional[ScheduledTask]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def save(self, task: ScheduledTask) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    async def delete(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    async def list_tasks(self) -> list[ScheduledTask]:
        return [task.model_copy(deep=True) for task in self._tasks.values()]


class SQLiteScheduleStore(SQLiteBackend, ScheduleStore):
    """Scheduled tasks as JSON records in one SQLite table."""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS scheduled_tasks (
            id TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            status TEXT NOT NULL,
            record TEXT NOT NULL
        )
        """,
    )

    async def get(self, task_id: str) -> Optional[ScheduledTask]:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT record FROM scheduled_tasks WHERE id = ?", task_id
        )
        if not row:
            return None
        return ScheduledTask.model_validate_json(row["record"])

    async def save(self, task: ScheduledTask) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO scheduled_tasks (id, workflow_id, status, record)
            VALUES (?, ?, ?, ?)
            """,
            task.id,
            task.workflow_id,
            task.status.value,
            task.model_dump_json(),
        )

    async def delete(self, task_id: str) -> bool:
        count = await asyncio.to_thread(
            self._execute, "DELETE FROM scheduled_tasks WHERE id = ?", task_id
        )
        return count > 0

    async def list_tasks(self) -> list[ScheduledTask]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT record FROM scheduled_tasks")
        return [ScheduledTask.model_validate_json(r["record"]) for r in rows]
