"""Worker pool retry and concurrency tests."""

import asyncio
from collections import defaultdict

import pytest

from flowpilot.contracts import WorkflowDefinition
from flowpilot.dispatch import RunDispatcher
from flowpilot.errors import TransientCapabilityError
from flowpilot.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository
from flowpilot.queue import InMemoryRunQueue
from flowpilot.worker import WorkerPool


def _flaky(failures):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) <= failures:
            raise TransientCapabilityError("upstream 503")
        return {"calls": len(calls)}

    return flaky, calls


def broken():
    raise ValueError("bad input")


async def _pool(make_registry, make_executor, *funcs, max_attempts=3, **kwargs):
    executor, repository = make_executor(make_registry(*funcs))
    for func in funcs:
        await repository.save_workflow(
            func.__name__,
            WorkflowDefinition.parse([{"id": "call", "module": f"test.demo.{func.__name__}"}]),
        )
    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue, max_attempts=max_attempts)
    options = dict(backoff_initial=0.01, backoff_base=1, backoff_jitter=0, poll_timeout=0.02)
    options.update(kwargs)
    pool = WorkerPool(queue, executor, dispatcher, **options)
    return pool, dispatcher, repository


async def _drain(pool, timeout=5):
    task = asyncio.create_task(pool.start())
    await asyncio.wait_for(pool.join(), timeout)
    await pool.stop()
    await task


@pytest.mark.asyncio
async def test_transient_failures_are_retried_until_success(make_registry, make_executor):
    flaky, calls = _flaky(failures=2)
    pool, dispatcher, repository = await _pool(make_registry, make_executor, flaky)

    job_id = await dispatcher.dispatch_workflow("flaky")
    await _drain(pool)

    assert len(calls) == 3
    assert pool.results[job_id].status == "success"
    assert pool.results[job_id].attempt == 3
    runs = await repository.list_runs(workflow_id="flaky")
    assert sorted(r.attempt for r in runs) == [1, 2, 3]
    assert sorted(r.status for r in runs) == ["error", "error", "success"]


@pytest.mark.asyncio
async def test_retries_stop_at_max_attempts(make_registry, make_executor):
    flaky, calls = _flaky(failures=10)
    pool, dispatcher, _ = await _pool(make_registry, make_executor, flaky, max_attempts=2)

    job_id = await dispatcher.dispatch_workflow("flaky")
    await _drain(pool)

    assert len(calls) == 2
    assert pool.results[job_id].status == "error"
    assert pool.results[job_id].retryable


@pytest.mark.asyncio
async def test_permanent_failures_are_not_retried(make_registry, make_executor):
    pool, dispatcher, repository = await _pool(make_registry, make_executor, broken)

    job_id = await dispatcher.dispatch_workflow("broken")
    await _drain(pool)

    assert pool.results[job_id].status == "error"
    assert pool.results[job_id].error_type == "ValueError"
    assert len(await repository.list_runs(workflow_id="broken")) == 1


@pytest.mark.asyncio
async def test_per_workflow_limit_holds_back_extra_runs(make_registry, make_executor):
    active = defaultdict(int)
    peak = defaultdict(int)

    async def slow(workflow: str):
        active[workflow] += 1
        peak[workflow] = max(peak[workflow], active[workflow])
        await asyncio.sleep(0.05)
        active[workflow] -= 1
        return workflow

    executor, repository = make_executor(make_registry(slow))
    definition = WorkflowDefinition.parse(
        [{"id": "call", "module": "test.demo.slow", "inputs": {"workflow": "{{workflowId}}"}}]
    )
    await repository.save_workflow("a", definition)
    await repository.save_workflow("b", definition)

    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue)
    pool = WorkerPool(
        queue, executor, dispatcher, max_concurrent=3, max_per_workflow=1, poll_timeout=0.02
    )
    jobs = [await dispatcher.dispatch_workflow(wf) for wf in ("a", "a", "a", "b")]
    await _drain(pool)

    assert peak["a"] == 1
    assert peak["b"] == 1
    assert all(pool.results[job].status == "success" for job in jobs)


@pytest.mark.asyncio
async def test_cancel_queued_job(make_registry, make_executor):
    pool, dispatcher, _ = await _pool(make_registry, make_executor, broken)
    job_id = await dispatcher.dispatch_workflow("broken")

    assert await pool.cancel(job_id) is True
    await _drain(pool)
    assert job_id not in pool.results


def test_limits_must_be_positive(make_registry, make_executor):
    executor, _ = make_executor(make_registry(broken))
    with pytest.raises(ValueError):
        WorkerPool(InMemoryRunQueue(), executor, max_concurrent=0)
    with pytest.raises(ValueError):
        WorkerPool(InMemoryRunQueue(), executor, max_per_workflow=0)


class Opaque:
    def __repr__(self):
        return "<opaque>"


def opaque():
    return Opaque()


def fine():
    return "ok"


async def _save(repository, *names):
    for name in names:
        await repository.save_workflow(
            name, WorkflowDefinition.parse([{"id": "call", "module": f"test.demo.{name}"}])
        )


@pytest.mark.asyncio
async def test_unserialisable_output_is_sealed_and_pool_keeps_going(
    make_registry, make_executor, tmp_path
):
    repository = SQLiteWorkflowRepository(tmp_path / "runs.db")
    executor, _ = make_executor(make_registry(opaque, fine), repository=repository)
    await _save(repository, "opaque", "fine")
    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue)
    pool = WorkerPool(queue, executor, dispatcher, max_concurrent=1, poll_timeout=0.02)

    first = await dispatcher.dispatch_workflow("opaque")
    second = await dispatcher.dispatch_workflow("fine")
    await _drain(pool)

    assert pool.results[first].status == "success"
    assert pool.results[first].output == "<opaque>"
    assert pool.results[second].output == "ok"
    stored = await repository.list_runs(workflow_id="opaque")
    assert [run.status for run in stored] == ["success"]


class RejectingRepository(InMemoryWorkflowRepository):
    async def record_run_started(self, run):
        if run.workflow_id == "doomed":
            raise RuntimeError("disk full")
        await super().record_run_started(run)


@pytest.mark.asyncio
async def test_worker_survives_executor_failure(make_registry, make_executor):
    repository = RejectingRepository()
    executor, _ = make_executor(make_registry(fine), repository=repository)
    await repository.save_workflow(
        "doomed", WorkflowDefinition.parse([{"id": "call", "module": "test.demo.fine"}])
    )
    await _save(repository, "fine")
    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue)
    pool = WorkerPool(queue, executor, dispatcher, max_concurrent=1, poll_timeout=0.02)

    doomed = await dispatcher.dispatch_workflow("doomed")
    job = await dispatcher.dispatch_workflow("fine")
    await _drain(pool)

    assert doomed not in pool.results
    assert pool.results[job].status == "success"


@pytest.mark.asyncio
async def test_global_concurrency_is_capped(make_registry, make_executor):
    state = {"active": 0, "peak": 0}

    async def slow():
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        await asyncio.sleep(0.05)
        state["active"] -= 1
        return "done"

    executor, repository = make_executor(make_registry(slow))
    definition = WorkflowDefinition.parse([{"id": "call", "module": "test.demo.slow"}])
    names = [f"wf{i}" for i in range(6)]
    for name in names:
        await repository.save_workflow(name, definition)

    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue)
    pool = WorkerPool(queue, executor, dispatcher, max_concurrent=2, poll_timeout=0.02)
    jobs = [await dispatcher.dispatch_workflow(name) for name in names]
    await _drain(pool)

    assert state["peak"] == 2
    assert all(pool.results[job].status == "success" for job in jobs)


@pytest.mark.asyncio
async def test_results_keep_only_the_latest_runs(make_registry, make_executor):
    executor, repository = make_executor(make_registry(fine))
    await _save(repository, "fine")
    queue = InMemoryRunQueue()
    dispatcher = RunDispatcher(queue)
    pool = WorkerPool(
        queue, executor, dispatcher, max_concurrent=1, poll_timeout=0.02, results_limit=2
    )

    jobs = [await dispatcher.dispatch_workflow("fine") for _ in range(3)]
    await _drain(pool)

    assert list(pool.results) == jobs[1:]
    assert len(await repository.list_runs(workflow_id="fine")) == 3
