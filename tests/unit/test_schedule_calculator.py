from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest
from pydantic import ValidationError

from flowpilot.scheduling import (
    Interval,
    Restrictions,
    ScheduledTask,
    ScheduleSpec,
    TimeWindow,
    calculate_next_execution,
    is_within_time_window,
)
from flowpilot.scheduling.calculator import add_interval, add_months, js_weekday, next_cron_time

UTC = timezone.utc


def _task(interval, restrictions=None, **spec):
    return ScheduledTask(
        name="t",
        workflowId="wf",
        schedule=ScheduleSpec(type="recurring", interval=interval, **spec),
        restrictions=restrictions or Restrictions(),
    )


def test_once_returns_execute_at():
    at = datetime(2024, 5, 1, 12, tzinfo=UTC)
    task = ScheduledTask(
        name="once", workflowId="wf", schedule={"type": "once", "executeAt": at.isoformat()}
    )
    assert calculate_next_execution(task, datetime(2030, 1, 1, tzinfo=UTC)) == at


def test_interval_is_added_to_the_reference_time():
    task = _task(Interval(value=15, unit="minutes"))
    base = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    assert calculate_next_execution(task, base) == base + timedelta(minutes=15)


def test_days_of_week_roll_forward_to_nearest_allowed_day():
    # 2024-01-01 is a Monday
    monday = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert js_weekday(monday) == 1
    task = _task(Interval(value=1, unit="days"), Restrictions(daysOfWeek=[1, 3, 5]))

    nxt = calculate_next_execution(task, monday)
    assert nxt == datetime(2024, 1, 3, 9, 0, tzinfo=UTC)
    assert js_weekday(nxt) == 3


def test_saturday_rolls_to_monday():
    friday = datetime(2024, 1, 5, 9, 0, tzinfo=UTC)
    task = _task(Interval(value=1, unit="days"), Restrictions(daysOfWeek=[1, 3, 5]))
    assert calculate_next_execution(task, friday) == datetime(2024, 1, 8, 9, 0, tzinfo=UTC)


def test_months_clamp_to_end_of_month():
    assert add_months(datetime(2024, 1, 31, tzinfo=UTC), 1) == datetime(2024, 2, 29, tzinfo=UTC)
    assert add_months(datetime(2023, 1, 31, tzinfo=UTC), 1) == datetime(2023, 2, 28, tzinfo=UTC)
    assert add_months(datetime(2024, 11, 30, tzinfo=UTC), 3) == datetime(2025, 2, 28, tzinfo=UTC)

    task = _task(Interval(value=1, unit="months"))
    assert calculate_next_execution(task, datetime(2024, 3, 31, tzinfo=UTC)) == datetime(
        2024, 4, 30, tzinfo=UTC
    )


def test_start_date_clamps_forward_and_end_date_stops():
    start = datetime(2024, 6, 1, tzinfo=UTC)
    end = datetime(2024, 6, 2, tzinfo=UTC)
    task = _task(Interval(value=1, unit="hours"), startDate=start, endDate=end)

    assert calculate_next_execution(task, datetime(2024, 1, 1, tzinfo=UTC)) == start
    assert calculate_next_execution(task, end - timedelta(minutes=30)) is None


def test_naive_datetimes_are_treated_as_utc():
    spec = ScheduleSpec(type="once", executeAt=datetime(2024, 1, 1, 8, 0))
    assert spec.execute_at.tzinfo is not None
    assert spec.execute_at == datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


def test_schedule_shape_validation():
    with pytest.raises(ValidationError):
        ScheduleSpec(type="once")
    with pytest.raises(ValidationError):
        ScheduleSpec(type="recurring")
    with pytest.raises(ValidationError):
        ScheduleSpec(type="recurring", interval={"value": 0, "unit": "days"})
    with pytest.raises(ValidationError):
        ScheduleSpec(type="recurring", interval={"value": 1, "unit": "days"}, timezone="Not/AZone")
    with pytest.raises(ValidationError):
        Restrictions(daysOfWeek=[7])


@pytest.mark.parametrize(
    "start, end, clock, inside",
    [
        ("09:00", "17:00", (9, 0), True),
        ("09:00", "17:00", (17, 0), True),
        ("09:00", "17:00", (17, 1), False),
        ("22:00", "06:00", (23, 30), True),
        ("22:00", "06:00", (5, 59), True),
        ("22:00", "06:00", (12, 0), False),
    ],
)
def test_time_window(start, end, clock, inside):
    moment = datetime(2024, 1, 1, *clock, tzinfo=UTC)
    assert is_within_time_window(moment, TimeWindow(start=start, end=end)) is inside


def test_time_window_rejects_bad_clock_values():
    with pytest.raises(ValidationError):
        TimeWindow(start="25:00", end="10:00")


def _zone(name):
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        pytest.skip(f"timezone data for {name} not installed")


def test_hour_intervals_span_real_time_across_dst_end():
    _zone("America/New_York")
    # 05:30Z is 01:30 EDT, the first pass through the repeated hour
    start = datetime(2024, 11, 3, 5, 30, tzinfo=UTC)
    task = _task(Interval(value=1, unit="hours"), timezone="America/New_York")

    nxt = calculate_next_execution(task, start)
    assert nxt == datetime(2024, 11, 3, 6, 30, tzinfo=UTC)
    assert nxt - start == timedelta(hours=1)


def test_minute_intervals_span_real_time_across_dst_start():
    new_york = _zone("America/New_York")
    # 06:45Z is 01:45 EST, fifteen minutes before clocks jump to 03:00 EDT
    start = datetime(2024, 3, 10, 6, 45, tzinfo=UTC)
    result = add_interval(start, Interval(value=30, unit="minutes"), new_york)
    assert result.astimezone(UTC) == datetime(2024, 3, 10, 7, 15, tzinfo=UTC)


def test_day_intervals_keep_the_wall_clock_across_dst():
    _zone("America/New_York")
    # noon EDT the day before DST ends
    start = datetime(2024, 11, 2, 16, 0, tzinfo=UTC)
    task = _task(Interval(value=1, unit="days"), timezone="America/New_York")

    # noon EST is 17:00Z
    assert calculate_next_execution(task, start) == datetime(2024, 11, 3, 17, 0, tzinfo=UTC)


def test_cron_next_matching_time():
    # 2024-01-01 is a Monday
    assert next_cron_time("0 9 * * 1-5", datetime(2024, 1, 1, 9, 0, tzinfo=UTC)) == datetime(
        2024, 1, 2, 9, 0, tzinfo=UTC
    )
    task = ScheduledTask(
        name="weekday mornings",
        workflowId="wf",
        schedule={"type": "cron", "cron": "0 9 * * 1-5"},
    )
    friday_evening = datetime(2024, 1, 5, 18, 0, tzinfo=UTC)
    assert calculate_next_execution(task, friday_evening) == datetime(2024, 1, 8, 9, 0, tzinfo=UTC)


def test_cron_start_date_is_inclusive_and_end_date_stops():
    start = datetime(2024, 6, 3, 9, 0, tzinfo=UTC)
    task = ScheduledTask(
        name="c",
        workflowId="wf",
        schedule={
            "type": "cron",
            "cron": "0 9 * * *",
            "startDate": start.isoformat(),
            "endDate": datetime(2024, 6, 4, tzinfo=UTC).isoformat(),
        },
    )
    assert calculate_next_execution(task, datetime(2024, 1, 1, tzinfo=UTC)) == start
    assert calculate_next_execution(task, start) is None


def test_cron_follows_the_schedule_timezone():
    _zone("Europe/Berlin")
    task = ScheduledTask(
        name="berlin",
        workflowId="wf",
        schedule={"type": "cron", "cron": "0 9 * * *", "timezone": "Europe/Berlin"},
    )
    # 09:00 CET is 08:00Z in winter
    assert calculate_next_execution(task, datetime(2024, 1, 10, 12, 0, tzinfo=UTC)) == datetime(
        2024, 1, 11, 8, 0, tzinfo=UTC
    )


def test_cron_shape_validation():
    with pytest.raises(ValidationError):
        ScheduleSpec(type="cron")
    with pytest.raises(ValidationError):
        ScheduleSpec(type="cron", cron="every morning")
