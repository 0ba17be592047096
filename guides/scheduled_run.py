"""Register schedules and fire the ones that are due."""

import asyncio
from datetime import datetime, timedelta, timezone

from flowpilot import build_runtime
from flowpilot.config import FlowpilotConfig


async def main():
    runtime = build_runtime(FlowpilotConfig())
    scheduler = runtime.scheduler

    soon = datetime.now(timezone.utc) + timedelta(seconds=1)
    once = await scheduler.schedule_once("launch", "daily_digest", soon, data={"topic": "launch"})
    weekdays = await scheduler.schedule_recurring(
        "weekday digest",
        "daily_digest",
        {"value": 1, "unit": "days"},
        timezone="Europe/Berlin",
        restrictions={
            "daysOfWeek": [1, 2, 3, 4, 5],
            "timeWindow": {"start": "07:00", "end": "10:00"},
        },
        data={"topic": "python"},
    )
    print(f"🗓️  {once.name}: next run at {once.next_execution_at}")
    print(f"🗓️  {weekdays.name}: next run at {weekdays.next_execution_at}")

    await asyncio.sleep(1.5)
    job_ids = await scheduler.tick()
    print(f"🚀 Fired {len(job_ids)} job(s): {job_ids}")
    print(f"📊 {await scheduler.stats()}")


if __name__ == "__main__":
    asyncio.run(main())
