"""Due-time computation for scheduled tasks."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from croniter import croniter

from .models import Interval, ScheduledTask, ScheduleSpec, TimeWindow

# Elapsed-time units are added to the UTC instant; calendar units
# (days, weeks, months) move the wall clock of the schedule's timezone.
_ELAPSED_UNITS = {
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
}
_CALENDAR_UNITS = {
    "days": timedelta(days=1),
    "weeks": timedelta(weeks=1),
}


def add_months(moment: datetime, months: int) -> datetime:
    """Shift ``moment`` by whole months, clamping the day to the month end."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def add_interval(
    moment: datetime, interval: Interval, tz: Optional[tzinfo] = None
) -> datetime:
    """Add ``interval`` to ``moment``; the result is expressed in ``tz``.

    Minutes and hours always span real elapsed time, even across a DST change.
    """
    tz = tz or moment.tzinfo or timezone.utc
    if interval.unit in _ELAPSED_UNITS:
        instant = moment.astimezone(timezone.utc) + _ELAPSED_UNITS[interval.unit] * interval.value
        return instant.astimezone(tz)
    local = moment.astimezone(tz)
    if interval.unit == "months":
        return add_months(local, interval.value)
    return local + _CALENDAR_UNITS[interval.unit] * interval.value


def next_cron_time(expression: str, after: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """First time strictly after ``after`` matching ``expression`` on ``tz``'s clock."""
    local = after.astimezone(tz or timezone.utc)
    return croniter(expression, local).get_next(datetime)


def js_weekday(moment: datetime) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def _first_candidate(spec: ScheduleSpec, reference: datetime) -> datetime:
    tz = spec.tz
    if spec.type == "cron":
        if spec.start_date and reference < spec.start_date:
            # a match exactly at startDate counts
            reference = spec.start_date - timedelta(seconds=1)
        return next_cron_time(spec.cron, reference, tz)

    candidate = add_interval(reference, spec.interval, tz)
    if spec.start_date and candidate < spec.start_date:
        candidate = spec.start_date.astimezone(tz)
    return candidate


def calculate_next_execution(
    task: ScheduledTask, from_date: Optional[datetime] = None
) -> Optional[datetime]:
    """Return the next occurrence after ``from_date`` or ``None`` if there is none.

    ``once`` schedules always return ``executeAt``. Recurring schedules add
    the interval to ``from_date`` and cron schedules take the next matching
    time; both clamp forward to ``startDate``, roll forward to the nearest
    allowed weekday and give up past ``endDate``. The result is UTC.
    """
    spec = task.schedule
    if spec.type == "once":
        return spec.execute_at

    candidate = _first_candidate(spec, from_date or datetime.now(timezone.utc))

    days = task.restrictions.days_of_week
    if days:
        weekday = js_weekday(candidate)
        if weekday not in days:
            candidate = candidate + timedelta(days=min((d - weekday) % 7 for d in days))

    if spec.end_date and candidate > spec.end_date:
        return None
    return candidate.astimezone(timezone.utc)


def is_within_time_window(
    moment: datetime, window: TimeWindow, tz: Optional[tzinfo] = None
) -> bool:
    """Check ``moment`` against ``window`` on the wall clock of ``tz`` (UTC by default)."""
    return window.contains(moment.astimezone(tz or timezone.utc))


__all__ = [
    "add_interval",
    "add_months",
    "calculate_next_execution",
    "is_within_time_window",
    "js_weekday",
    "next_cron_time",
]
