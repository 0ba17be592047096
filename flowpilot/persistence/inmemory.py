"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..contracts import WorkflowDefinition
from .models import WorkflowRun
from .repository import RunAlreadySealedError, WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store definitions and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._runs: Dict[str, WorkflowRun] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow_id: str, definition: WorkflowDefinition) -> None:
        self._workflows[workflow_id] = definition.model_copy(update={"id": workflow_id})

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._workflows.get(workflow_id)

    async def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())

    # ------------------------------------------------------------------
    async def record_run_started(self, run: WorkflowRun) -> None:
        existing = self._runs.get(run.id)
        if existing is not None and existing.sealed:
            raise RunAlreadySealedError(f"Run {run.id} is already completed")
        self._runs[run.id] = run

    async def record_run_completed(self, run: WorkflowRun) -> None:
        existing = self._runs.get(run.id)
        if existing is not None and existing.sealed:
            raise RunAlreadySealedError(f"Run {run.id} is already completed")
        self._runs[run.id] = run

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        return self._runs.get(run_id)

    async def list_runs(
        self, workflow_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[WorkflowRun]:
        runs = [r for r in self._runs.values() if workflow_id is None or r.workflow_id == workflow_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:limit] if limit else runs
