"""Per-run execution context."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from .contracts import TriggerType
from .credentials import ResolvedCredential


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionContext(BaseModel):
    """Mutable state owned by exactly one in-flight run.

    ``variables`` is the namespace templates resolve against: the trigger
    payload, step outputs keyed by step id, loop variables and resolved
    credentials under ``credential``/``user``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str
    workflow_id: str
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    step_outputs: Dict[str, Any] = Field(default_factory=dict)
    step_states: Dict[str, StepStatus] = Field(default_factory=dict)
    credentials: Dict[str, Optional[ResolvedCredential]] = Field(default_factory=dict)
    platform_usage: Dict[str, Set[str]] = Field(default_factory=dict)
    last_output: Any = None
    cancel_requested: bool = False

    def model_post_init(self, __context: Any) -> None:
        self.variables.setdefault("workflowId", self.workflow_id)
        self.variables.setdefault("runId", self.run_id)
        self.variables.setdefault("trigger", self.trigger_data)
        self.variables.setdefault("triggerType", self.trigger_type.value)
        self.variables.setdefault("credential", {})
        self.variables.setdefault("user", {"id": self.user_id})

    def set_output(self, step_id: str, output: Any, alias: Optional[str] = None) -> None:
        self.step_outputs[step_id] = output
        self.variables[step_id] = output
        if alias:
            self.variables[alias] = output
        self.last_output = output

    def set_variable(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def add_credential(self, name: str, credential: Optional[ResolvedCredential]) -> None:
        """Cache a resolved credential and expose its value to templates."""
        self.credentials[name] = credential
        value = credential.value if credential is not None else None
        self.variables["credential"][name] = value
        if name != "id":
            self.variables["user"][name] = value

    def mark(self, step_id: str, status: StepStatus) -> None:
        self.step_states[step_id] = status

    def cancel(self) -> None:
        """Ask the run to stop before its next step."""
        self.cancel_requested = True

    def snapshot(self) -> Dict[str, Any]:
        """Diagnostic view of the run without secret material."""
        return {
            "outputs": dict(self.step_outputs),
            "steps": {k: v.value for k, v in self.step_states.items()},
            "trigger": self.trigger_data,
        }
