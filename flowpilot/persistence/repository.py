"""Repository abstraction for workflow definitions and run history."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import WorkflowDefinition
from .models import WorkflowRun


class RunAlreadySealedError(ValueError):
    """A completed run record cannot be changed."""


class WorkflowRepository(Protocol):
    """Protocol for persistence backends."""

    async def save_workflow(self, workflow_id: str, definition: WorkflowDefinition) -> None:
        """Store or replace a workflow definition."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow definition by id."""

    async def list_workflows(self) -> list[WorkflowDefinition]:
        """Return all stored workflow definitions."""

    async def record_run_started(self, run: WorkflowRun) -> None:
        """Persist a run in ``running`` status."""

    async def record_run_completed(self, run: WorkflowRun) -> None:
        """Seal a run with its terminal status."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def list_runs(
        self, workflow_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[WorkflowRun]:
        """Return runs, newest first."""
