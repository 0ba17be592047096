"""Workflow run execution tests."""

import pytest

from flowpilot.contracts import RunRequest, TriggerType, WorkflowDefinition
from flowpilot.errors import TransientCapabilityError
from flowpilot.utils.retry import compute_backoff


def step_a():
    return {"count": 5}


def step_b(count: int):
    return {"message": f"count is {count}"}


def flaky():
    raise TransientCapabilityError("upstream 503")


def broken():
    raise ValueError("bad payload")


DEFINITION = {
    "steps": [
        {"id": "A", "module": "test.demo.step_a"},
        {
            "id": "gate",
            "condition": "{{A.count}} > 3",
            "then": [{"id": "B", "module": "test.demo.step_b", "inputs": {"count": "{{A.count}}"}}],
        },
    ]
}


@pytest.mark.asyncio
async def test_successful_run_is_recorded(make_registry, make_executor):
    executor, repository = make_executor(make_registry(step_a, step_b))
    await repository.save_workflow("wf", WorkflowDefinition.parse(DEFINITION))

    request = RunRequest(workflow_id="wf", trigger_type=TriggerType.API, trigger_data={"x": 1})
    run = await executor.execute(request)

    assert run.status == "success"
    assert run.output == {"message": "count is 5"}
    assert run.job_id == request.job_id
    assert run.trigger_type == TriggerType.API
    assert run.duration is not None
    assert run.context_snapshot["steps"] == {"A": "succeeded", "gate": "succeeded", "B": "succeeded"}

    stored = await repository.get_run(run.id)
    assert stored == run
    assert stored.sealed


@pytest.mark.asyncio
async def test_inline_definition_skips_repository_lookup(make_registry, make_executor):
    executor, repository = make_executor(make_registry(step_a, step_b))
    run = await executor.execute(
        RunRequest(workflow_id="adhoc"), WorkflowDefinition.parse(DEFINITION)
    )
    assert run.status == "success"
    assert await repository.get_workflow("adhoc") is None


@pytest.mark.asyncio
async def test_unknown_workflow_is_a_permanent_error(make_registry, make_executor):
    executor, _ = make_executor(make_registry(step_a))
    run = await executor.execute(RunRequest(workflow_id="ghost"))
    assert run.status == "error"
    assert run.error_type == "WorkflowNotFoundError"
    assert not run.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "func, error_type, retryable",
    [(flaky, "TransientCapabilityError", True), (broken, "ValueError", False)],
)
async def test_step_failures_are_classified(make_registry, make_executor, func, error_type, retryable):
    executor, _ = make_executor(make_registry(func))
    definition = WorkflowDefinition.parse([{"id": "only", "module": f"test.demo.{func.__name__}"}])

    run = await executor.execute(RunRequest(workflow_id="wf"), definition)

    assert run.status == "error"
    assert run.error_step == "only"
    assert run.error_type == error_type
    assert run.retryable is retryable


def test_compute_backoff_growth():
    first = compute_backoff(1, base=2, initial=1, jitter=0)
    second = compute_backoff(2, base=2, initial=1, jitter=0)
    third = compute_backoff(3, base=2, initial=1, jitter=0)
    assert (first, second, third) == (1, 2, 4)
    assert 1 <= compute_backoff(1, initial=1, jitter=0.5) <= 1.5
