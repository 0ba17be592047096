"""Queue a few runs and let the worker pool drain them.

Usage:
    python guides/worker_example.py [path/to/workflow.yaml]

Set ``FLOWPILOT_QUEUE=redis`` to use Redis instead of the in-process queue;
in that case start ``flowpilot worker start`` in another terminal as well.
"""

import asyncio
import sys
from pathlib import Path

import yaml

from flowpilot import WorkflowDefinition, build_runtime

DEFAULT_WORKFLOW = Path(__file__).parent / "workflows" / "daily_digest.yaml"


async def main():
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_WORKFLOW
    definition = WorkflowDefinition.parse(yaml.safe_load(path.read_text()))

    runtime = build_runtime()
    await runtime.repository.save_workflow(definition.id, definition)

    jobs = []
    for topic in ("python", "rust", "go"):
        job_id = await runtime.dispatcher.dispatch_workflow(
            definition.id,
            trigger_data={"topic": topic, "feedUrl": "https://example.com/feed.json"},
        )
        jobs.append(job_id)
        print(f"📨 Queued job {job_id} for {topic}")

    pool = asyncio.create_task(runtime.workers.start())
    await runtime.workers.join()
    await runtime.workers.stop()
    await pool

    for job_id in jobs:
        run = runtime.workers.results[job_id]
        print(f"✅ {job_id}: {run.status} -> {run.output or run.error}")


if __name__ == "__main__":
    asyncio.run(main())
