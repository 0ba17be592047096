"""Scheduled workflow runs."""

from __future__ import annotations

from typing import Optional

from ..config import FlowpilotConfig, resolve_database_url, sqlite_path
from .calculator import (
    add_interval,
    calculate_next_execution,
    is_within_time_window,
    next_cron_time,
)
from .models import (
    Interval,
    Restrictions,
    ScheduledTask,
    ScheduleSpec,
    ScheduleStatus,
    TimeWindow,
)
from .scheduler import Scheduler
from .store import InMemoryScheduleStore, ScheduleStore, SQLiteScheduleStore


_store_instance: ScheduleStore | None = None


def get_schedule_store(
    database_url: Optional[str] = None, config: Optional[FlowpilotConfig] = None
) -> ScheduleStore:
    """Return a schedule store for ``database_url`` (in-memory when unset).

    Without arguments the previously created store is reused.
    """
    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    url = resolve_database_url(database_url, config)
    _store_instance = SQLiteScheduleStore(sqlite_path(url)) if url else InMemoryScheduleStore()
    return _store_instance


__all__ = [
    "InMemoryScheduleStore",
    "Interval",
    "Restrictions",
    "SQLiteScheduleStore",
    "ScheduleSpec",
    "ScheduleStatus",
    "ScheduleStore",
    "ScheduledTask",
    "Scheduler",
    "TimeWindow",
    "add_interval",
    "calculate_next_execution",
    "get_schedule_store",
    "is_within_time_window",
    "next_cron_time",
]
