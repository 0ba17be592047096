from datetime import datetime, timedelta, timezone

import pytest

from flowpilot.contracts import TriggerType
from flowpilot.dispatch import RunDispatcher
from flowpilot.errors import ScheduleBoundsExceeded, ScheduleNotFoundError, ScheduleStateError
from flowpilot.queue import InMemoryRunQueue
from flowpilot.scheduling import (
    InMemoryScheduleStore,
    Scheduler,
    ScheduleStatus,
    SQLiteScheduleStore,
)

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _scheduler(clock=None, store=None):
    queue = InMemoryRunQueue()
    scheduler = Scheduler(
        store=store or InMemoryScheduleStore(),
        dispatcher=RunDispatcher(queue),
        clock=clock or Clock(),
    )
    return scheduler, queue


@pytest.mark.asyncio
async def test_first_recurring_occurrence_is_one_interval_out():
    scheduler, _ = _scheduler()
    task = await scheduler.schedule_recurring("hourly", "wf", {"value": 1, "unit": "hours"})
    assert task.status == ScheduleStatus.ACTIVE
    assert task.next_execution_at == T0 + timedelta(hours=1)


@pytest.mark.asyncio
async def test_tick_enqueues_schedule_trigger():
    clock = Clock()
    scheduler, queue = _scheduler(clock)
    task = await scheduler.schedule_recurring(
        "hourly", "wf", {"value": 1, "unit": "hours"}, data={"topic": "news"}
    )

    assert await scheduler.tick() == []
    clock.advance(hours=1)
    job_ids = await scheduler.tick()

    assert len(job_ids) == 1
    request = await queue.get(timeout=0.1)
    assert request.job_id == job_ids[0]
    assert request.workflow_id == "wf"
    assert request.trigger_type == TriggerType.SCHEDULE
    assert request.trigger_data == {
        "scheduleId": task.id,
        "scheduledAt": (T0 + timedelta(hours=1)).isoformat(),
        "data": {"topic": "news"},
    }

    fired = await scheduler.get(task.id)
    assert fired.execution_count == 1
    assert fired.last_executed_at == clock.now
    assert fired.next_execution_at == T0 + timedelta(hours=2)


@pytest.mark.asyncio
async def test_missed_occurrences_fire_once():
    clock = Clock()
    scheduler, queue = _scheduler(clock)
    task = await scheduler.schedule_recurring("m", "wf", {"value": 10, "unit": "minutes"})

    clock.advance(minutes=65)
    assert len(await scheduler.tick()) == 1
    assert await queue.size() == 1
    updated = await scheduler.get(task.id)
    assert updated.next_execution_at == T0 + timedelta(minutes=70)


@pytest.mark.asyncio
async def test_max_executions_completes_the_task():
    clock = Clock()
    scheduler, queue = _scheduler(clock)
    task = await scheduler.schedule_recurring(
        "twice", "wf", {"value": 1, "unit": "hours"}, restrictions={"maxExecutions": 2}
    )

    for _ in range(3):
        clock.advance(hours=1)
        await scheduler.tick()

    done = await scheduler.get(task.id)
    assert done.status == ScheduleStatus.COMPLETED
    assert done.execution_count == 2
    assert done.next_execution_at is None
    assert await queue.size() == 2


@pytest.mark.asyncio
async def test_once_schedule_fires_then_completes():
    clock = Clock()
    scheduler, _ = _scheduler(clock)
    task = await scheduler.schedule_once("launch", "wf", T0 + timedelta(minutes=5))

    clock.advance(minutes=5)
    assert len(await scheduler.tick()) == 1
    assert (await scheduler.get(task.id)).status == ScheduleStatus.COMPLETED
    clock.advance(minutes=5)
    assert await scheduler.tick() == []


@pytest.mark.asyncio
async def test_time_window_holds_due_tasks_back():
    clock = Clock(datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc))
    scheduler, _ = _scheduler(clock)
    await scheduler.schedule_recurring(
        "office", "wf", {"value": 1, "unit": "hours"},
        restrictions={"timeWindow": {"start": "09:00", "end": "17:00"}},
    )

    clock.advance(hours=2)
    assert await scheduler.get_due_schedules() == []
    assert await scheduler.tick() == []

    clock.now = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)
    assert len(await scheduler.tick()) == 1


@pytest.mark.asyncio
async def test_pause_resume_and_cancel():
    clock = Clock()
    scheduler, _ = _scheduler(clock)
    task = await scheduler.schedule_recurring("p", "wf", {"value": 1, "unit": "hours"})

    paused = await scheduler.pause(task.id)
    assert paused.status == ScheduleStatus.PAUSED
    clock.advance(hours=3)
    assert await scheduler.tick() == []
    with pytest.raises(ScheduleStateError):
        await scheduler.pause(task.id)

    resumed = await scheduler.resume(task.id)
    assert resumed.status == ScheduleStatus.ACTIVE
    assert resumed.next_execution_at == clock.now + timedelta(hours=1)

    cancelled = await scheduler.cancel(task.id)
    assert cancelled.status == ScheduleStatus.CANCELLED
    assert cancelled.next_execution_at is None
    with pytest.raises(ScheduleStateError):
        await scheduler.cancel(task.id)
    with pytest.raises(ScheduleStateError):
        await scheduler.resume(task.id)
    with pytest.raises(ScheduleStateError):
        await scheduler.update(task.id, name="again")


@pytest.mark.asyncio
async def test_unknown_schedule_raises():
    scheduler, _ = _scheduler()
    with pytest.raises(ScheduleNotFoundError):
        await scheduler.pause("missing")


@pytest.mark.asyncio
async def test_end_date_before_first_occurrence_is_rejected():
    scheduler, _ = _scheduler()
    with pytest.raises(ScheduleBoundsExceeded):
        await scheduler.schedule_recurring(
            "late", "wf", {"value": 1, "unit": "days"}, end_date=T0 + timedelta(hours=1)
        )


@pytest.mark.asyncio
async def test_update_schedule_recomputes_next_execution():
    clock = Clock()
    scheduler, _ = _scheduler(clock)
    task = await scheduler.schedule_recurring("u", "wf", {"value": 1, "unit": "hours"})

    updated = await scheduler.update(
        task.id, schedule={"interval": {"value": 5, "unit": "minutes"}}, data={"x": 1}
    )
    assert updated.next_execution_at == T0 + timedelta(minutes=5)
    assert updated.data == {"x": 1}


@pytest.mark.asyncio
async def test_listing_stats_and_cleanup():
    clock = Clock()
    scheduler, _ = _scheduler(clock)
    later = await scheduler.schedule_recurring("later", "wf-a", {"value": 2, "unit": "hours"})
    sooner = await scheduler.schedule_recurring("sooner", "wf-b", {"value": 1, "unit": "hours"})
    await scheduler.cancel(later.id)

    assert [t.id for t in await scheduler.list_schedules()] == [sooner.id, later.id]
    assert [t.id for t in await scheduler.list_schedules(workflow_id="wf-a")] == [later.id]
    assert [t.id for t in await scheduler.list_schedules(status="active")] == [sooner.id]

    stats = await scheduler.stats()
    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["cancelled"] == 1
    assert stats["next_execution_in"] == 3600

    clock.advance(days=31)
    assert await scheduler.cleanup(older_than_days=30) == 1
    assert await scheduler.get(later.id) is None


@pytest.mark.asyncio
async def test_tick_without_dispatcher_fails():
    scheduler = Scheduler(store=InMemoryScheduleStore())
    with pytest.raises(RuntimeError):
        await scheduler.tick()


@pytest.mark.asyncio
async def test_sqlite_store_persists_tasks(tmp_path):
    clock = Clock()
    store = SQLiteScheduleStore(tmp_path / "schedules.db")
    scheduler, _ = _scheduler(clock, store=store)
    task = await scheduler.schedule_recurring(
        "persisted", "wf", {"value": 1, "unit": "days"}, restrictions={"daysOfWeek": [1, 3]}
    )

    reopened = SQLiteScheduleStore(tmp_path / "schedules.db")
    loaded = await reopened.get(task.id)
    assert loaded.name == "persisted"
    assert loaded.restrictions.days_of_week == [1, 3]
    assert loaded.next_execution_at == task.next_execution_at
    assert [t.id for t in await reopened.list_tasks()] == [task.id]
    assert await reopened.delete(task.id) is True


@pytest.mark.asyncio
async def test_cron_schedule_fires_on_matching_times():
    # T0 is Monday 12:00 UTC
    clock = Clock()
    scheduler, queue = _scheduler(clock)
    task = await scheduler.schedule_cron("weekday mornings", "wf", "0 9 * * 1-5")
    assert task.schedule.type == "cron"
    assert task.next_execution_at == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

    clock.now = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert len(await scheduler.tick()) == 1
    request = await queue.get(timeout=0.1)
    assert request.trigger_data["scheduledAt"] == "2024-01-02T09:00:00+00:00"

    fired = await scheduler.get(task.id)
    assert fired.next_execution_at == datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_invalid_cron_expression_is_rejected():
    scheduler, _ = _scheduler()
    with pytest.raises(ValueError):
        await scheduler.schedule_cron("bad", "wf", "61 * * * *")
