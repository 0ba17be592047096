"""Workflow definitions and run history."""

from __future__ import annotations

from typing import Optional

from ..config import FlowpilotConfig, resolve_database_url, sqlite_path
from .inmemory import InMemoryWorkflowRepository
from .models import WorkflowRun
from .repository import RunAlreadySealedError, WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[FlowpilotConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    A ``sqlite://`` URL gives :class:`SQLiteWorkflowRepository`; no URL at
    all gives the in-memory one. Called without arguments after a first
    call, the same repository comes back.
    """
    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = resolve_database_url(database_url, config)
    if url:
        _repository_instance = SQLiteWorkflowRepository(sqlite_path(url))
    else:
        _repository_instance = InMemoryWorkflowRepository()
    return _repository_instance


__all__ = [
    "InMemoryWorkflowRepository",
    "RunAlreadySealedError",
    "SQLiteWorkflowRepository",
    "WorkflowRepository",
    "WorkflowRun",
    "get_repository",
]
