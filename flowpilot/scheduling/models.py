"""Pydantic models for scheduled workflow runs."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IntervalUnit = Literal["minutes", "hours", "days", "weeks", "months"]

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED)


class Interval(BaseModel):
    value: int = Field(gt=0)
    unit: IntervalUnit


class ScheduleSpec(BaseModel):
    """When a task fires; ``type`` selects which timing field applies."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["once", "recurring", "cron"]
    execute_at: Optional[datetime] = Field(default=None, alias="executeAt")
    interval: Optional[Interval] = None
    cron: Optional[str] = None
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    timezone: Optional[str] = None

    @field_validator("execute_at", "start_date", "end_date")
    @classmethod
    def _normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @field_validator("cron")
    @classmethod
    def _valid_cron(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not croniter.is_valid(v):
            raise ValueError(f"Invalid cron expression: {v!r}")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
        return v

    @model_validator(mode="after")
    def _check_shape(self) -> "ScheduleSpec":
        if self.type == "once" and self.execute_at is None:
            raise ValueError("once schedules need executeAt")
        if self.type == "recurring" and self.interval is None:
            raise ValueError("recurring schedules need an interval")
        if self.type == "cron" and not self.cron:
            raise ValueError("cron schedules need a cron expression")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone) if self.timezone else timezone.utc


class TimeWindow(BaseModel):
    """Allowed clock-time window, ``HH:MM`` inclusive on both ends."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _clock(cls, v: str) -> str:
        if not _CLOCK_RE.match(v):
            raise ValueError(f"Expected HH:MM, got {v!r}")
        return v

    @staticmethod
    def _minutes(value: str) -> int:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)

    def contains(self, moment: datetime) -> bool:
        current = moment.hour * 60 + moment.minute
        start, end = self._minutes(self.start), self._minutes(self.end)
        if start <= end:
            return start <= current <= end
        # window wraps midnight, e.g. 22:00-06:00
        return current >= start or current <= end


class Restrictions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    days_of_week: Optional[List[int]] = Field(default=None, alias="daysOfWeek")
    time_window: Optional[TimeWindow] = Field(default=None, alias="timeWindow")
    max_executions: Optional[int] = Field(default=None, ge=1, alias="maxExecutions")

    @field_validator("days_of_week")
    @classmethod
    def _valid_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        if not v:
            raise ValueError("daysOfWeek must not be empty")
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("daysOfWeek values run from 0 (Sunday) to 6 (Saturday)")
        return sorted(set(v))


class ScheduledTask(BaseModel):
    """A registered schedule and its firing state."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    workflow_id: str = Field(alias="workflowId")
    data: Dict[str, Any] = Field(default_factory=dict)
    schedule: ScheduleSpec
    restrictions: Restrictions = Field(default_factory=Restrictions)
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    execution_count: int = Field(default=0, alias="executionCount")
    last_executed_at: Optional[datetime] = Field(default=None, alias="lastExecutedAt")
    next_execution_at: Optional[datetime] = Field(default=None, alias="nextExecutionAt")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("last_executed_at", "next_execution_at", "created_at")
    @classmethod
    def _normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


__all__ = [
    "Interval",
    "IntervalUnit",
    "Restrictions",
    "ScheduleSpec",
    "ScheduleStatus",
    "ScheduledTask",
    "TimeWindow",
]
