"""Run execution: load a definition, interpret it, record the outcome."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic_core import to_json, to_jsonable_python

from .context import ExecutionContext
from .contracts import RunRequest, WorkflowDefinition
from .errors import RunCancelledError, StepExecutionError, WorkflowNotFoundError, is_transient
from .interpreter import StepInterpreter
from .persistence import WorkflowRepository, WorkflowRun

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    """Return ``value`` as is when it serialises, otherwise a JSON-safe copy.

    Objects pydantic cannot encode are replaced by their ``repr``.
    """
    try:
        to_json(value)
    except ValueError:
        return to_jsonable_python(value, fallback=repr)
    return value


class WorkflowExecutor:
    """Executes one run attempt per ``RunRequest``.

    Each call creates a fresh ``ExecutionContext``, records a ``running``
    run, interprets the workflow and seals the run record as ``success`` or
    ``error``. Failures never propagate out of ``execute``; they are reported
    through the returned record.
    """

    def __init__(self, interpreter: StepInterpreter, repository: WorkflowRepository) -> None:
        self._interpreter = interpreter
        self._repository = repository
        self._active: Dict[str, ExecutionContext] = {}

    async def execute(
        self, request: RunRequest, definition: Optional[WorkflowDefinition] = None
    ) -> WorkflowRun:
        started_at = datetime.now(timezone.utc)
        run = WorkflowRun(
            id=str(uuid.uuid4()),
            workflow_id=request.workflow_id,
            job_id=request.job_id,
            trigger_type=request.trigger_type,
            trigger_data=_jsonable(request.trigger_data),
            attempt=request.attempt,
            started_at=started_at,
        )
        await self._repository.record_run_started(run)
        logger.info(
            f"Run {run.id} started for workflow {request.workflow_id} "
            f"(job={request.job_id}, attempt={request.attempt})"
        )

        ctx = ExecutionContext(
            run_id=run.id,
            workflow_id=request.workflow_id,
            trigger_type=request.trigger_type,
            trigger_data=request.trigger_data,
            user_id=request.user_id,
        )
        self._active[request.job_id] = ctx
        update: Dict[str, Any]
        try:
            if definition is None:
                definition = await self._repository.get_workflow(request.workflow_id)
            if definition is None:
                raise WorkflowNotFoundError(f"Workflow not found: {request.workflow_id}")
            output = await self._interpreter.run(definition, ctx)
            update = {"status": "success", "output": _jsonable(output)}
        except StepExecutionError as exc:
            update = {
                "status": "error",
                "error": str(exc),
                "error_step": exc.step_id,
                "error_type": exc.error_type,
                "retryable": exc.retryable,
            }
        except Exception as exc:
            update = {
                "status": "error",
                "error": str(exc),
                "error_type": type(exc).__name__,
                "retryable": is_transient(exc) and not isinstance(exc, RunCancelledError),
            }
        finally:
            self._active.pop(request.job_id, None)

        completed_at = datetime.now(timezone.utc)
        update.update(
            completed_at=completed_at,
            duration=int((completed_at - started_at).total_seconds() * 1000),
            context_snapshot=_jsonable(ctx.snapshot()),
        )
        sealed = run.model_copy(update=update)
        try:
            await self._repository.record_run_completed(sealed)
        except Exception as exc:
            logger.exception(f"Could not store run {run.id}, sealing it as an error")
            sealed = run.model_copy(
                update={
                    "status": "error",
                    "error": f"Run record could not be stored: {exc}",
                    "error_step": sealed.error_step,
                    "error_type": type(exc).__name__,
                    "retryable": False,
                    "completed_at": completed_at,
                    "duration": sealed.duration,
                }
            )
            await self._repository.record_run_completed(sealed)
        if sealed.status == "success":
            logger.info(f"Run {run.id} succeeded in {sealed.duration}ms")
        else:
            logger.info(f"Run {run.id} failed at {sealed.error_step or '-'}: {sealed.error}")
        return sealed

    def cancel(self, job_id: str) -> bool:
        """Flag an in-flight run to stop before its next step."""
        ctx = self._active.get(job_id)
        if ctx is None:
            return False
        ctx.cancel()
        return True
