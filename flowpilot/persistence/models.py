"""Data models for persisted run history."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import TriggerType

RunStatus = Literal["running", "success", "error"]


class WorkflowRun(BaseModel):
    """Immutable record of one workflow run attempt."""

    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: str
    job_id: Optional[str] = None
    status: RunStatus = "running"
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    attempt: int = 1
    output: Any = None
    error: Optional[str] = None
    error_step: Optional[str] = None
    error_type: Optional[str] = None
    retryable: bool = False
    context_snapshot: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, description="Milliseconds")

    @property
    def sealed(self) -> bool:
        return self.status != "running"
