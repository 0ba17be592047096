"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from ..contracts import WorkflowDefinition
from ..utils.sqlite import SQLiteBackend
from .models import WorkflowRun
from .repository import RunAlreadySealedError, WorkflowRepository


class SQLiteWorkflowRepository(SQLiteBackend, WorkflowRepository):
    """Workflow definitions and run records in SQLite.

    Both are stored as pydantic JSON; the extra columns exist for filtering.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS workflows (
            workflow_id TEXT PRIMARY KEY,
            definition TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS workflow_runs (
            id TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            status TEXT NOT NULL,
            started_at TEXT NOT NULL,
            record TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_runs_workflow ON workflow_runs (workflow_id, started_at)",
    )

    def _write_run(self, run: WorkflowRun) -> None:
        row = self._fetchone("SELECT status FROM workflow_runs WHERE id = ?", run.id)
        if row is not None and row["status"] != "running":
            raise RunAlreadySealedError(f"Run {run.id} is already completed")
        self._execute(
            """
            INSERT OR REPLACE INTO workflow_runs (id, workflow_id, status, started_at, record)
            VALUES (?, ?, ?, ?, ?)
            """,
            run.id,
            run.workflow_id,
            run.status,
            run.started_at.isoformat(),
            run.model_dump_json(),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def save_workflow(self, workflow_id: str, definition: WorkflowDefinition) -> None:
        definition = definition.model_copy(update={"id": workflow_id})
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO workflows (workflow_id, definition) VALUES (?, ?)",
            workflow_id,
            definition.model_dump_json(by_alias=True),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT definition FROM workflows WHERE workflow_id = ?",
            workflow_id,
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate(json.loads(row["definition"]))

    async def list_workflows(self) -> list[WorkflowDefinition]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT definition FROM workflows ORDER BY workflow_id"
        )
        return [WorkflowDefinition.model_validate(json.loads(r["definition"])) for r in rows]

    async def record_run_started(self, run: WorkflowRun) -> None:
        await asyncio.to_thread(self._write_run, run)

    async def record_run_completed(self, run: WorkflowRun) -> None:
        await asyncio.to_thread(self._write_run, run)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT record FROM workflow_runs WHERE id = ?", run_id
        )
        if not row:
            return None
        return WorkflowRun.model_validate_json(row["record"])

    async def list_runs(
        self, workflow_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[WorkflowRun]:
        query = "SELECT record FROM workflow_runs"
        params: list[Any] = []
        if workflow_id is not None:
            query += " WHERE workflow_id = ?"
            params.append(workflow_id)
        query += " ORDER BY started_at DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [WorkflowRun.model_validate_json(r["record"]) for r in rows]
