"""Core contracts for flowpilot workflows and run requests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import (
    DEFAULT_ITEM_NAME,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PRIORITY,
)
from .errors import WorkflowValidationError

StepType = Literal["action", "condition", "forEach", "while", "group"]


class TriggerType(str, Enum):
    """How a run was started."""

    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    API = "api"


class Step(BaseModel):
    """One node of a workflow's step tree.

    A leaf step carries ``module``; a composite step carries nested steps in
    ``then``/``else``/``steps``. The kind is inferred from the fields that are
    present unless ``type`` is given explicitly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    type: Optional[StepType] = None
    module: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    output_as: Optional[str] = Field(default=None, alias="outputAs")

    condition: Optional[Any] = None
    then: Optional[Tuple["Step", ...]] = None
    else_: Optional[Tuple["Step", ...]] = Field(default=None, alias="else")
    else_on_error: bool = Field(default=False, alias="elseOnError")

    array: Optional[Any] = None
    item_as: str = Field(default=DEFAULT_ITEM_NAME, alias="itemAs")
    index_as: Optional[str] = Field(default=None, alias="indexAs")
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, alias="maxIterations", ge=1)
    steps: Optional[Tuple["Step", ...]] = None

    fallback: Optional[Tuple["Step", ...]] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_module_path(cls, data: Any) -> Any:
        if isinstance(data, dict) and "modulePath" in data and "module" not in data:
            data = dict(data)
            data["module"] = data.pop("modulePath")
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> "Step":
        kind = self.kind
        if self.module and (self.then or self.else_ or self.steps):
            raise ValueError(f"Step '{self.id}' cannot have both a module and nested steps")
        if kind == "action" and not self.module:
            raise ValueError(f"Action step '{self.id}' requires a module")
        if kind == "condition" and self.condition is None:
            raise ValueError(f"Condition step '{self.id}' requires a condition")
        if kind == "forEach" and self.array is None:
            raise ValueError(f"forEach step '{self.id}' requires an array")
        if kind == "while" and self.condition is None:
            raise ValueError(f"while step '{self.id}' requires a condition")
        return self

    @property
    def kind(self) -> StepType:
        if self.type:
            return self.type
        if self.module:
            return "action"
        if self.array is not None and self.steps is not None:
            return "forEach"
        if self.condition is not None and self.steps is not None and self.then is None:
            return "while"
        if self.condition is not None:
            return "condition"
        if self.steps is not None:
            return "group"
        raise ValueError(f"Cannot infer type of step '{self.id}'")

    @property
    def is_leaf(self) -> bool:
        return self.kind == "action"

    def children(self) -> Iterator["Step"]:
        """Yield every directly nested step across all branches."""
        for branch in (self.then, self.else_, self.steps, self.fallback):
            if branch:
                yield from branch


Step.model_rebuild()


class WorkflowDefinition(BaseModel):
    """Ordered step list plus an optional return value template."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    steps: Tuple[Step, ...]
    return_value: Optional[Any] = Field(default=None, alias="returnValue")

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.walk():
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    def walk(self) -> Iterator[Step]:
        """Depth-first iteration over every step in the tree."""
        stack: List[Step] = list(reversed(self.steps))
        while stack:
            step = stack.pop()
            yield step
            stack.extend(reversed(list(step.children())))

    def modules(self) -> List[str]:
        """Return the module paths referenced by leaf steps."""
        return [step.module for step in self.walk() if step.module]

    @classmethod
    def parse(cls, data: Any, workflow_id: Optional[str] = None) -> "WorkflowDefinition":
        """Validate raw workflow data, wrapping pydantic errors."""
        if isinstance(data, list):
            data = {"steps": data}
        if workflow_id is not None and isinstance(data, dict):
            data = {**data, "id": workflow_id}
        try:
            return cls.model_validate(data)
        except ValueError as exc:
            raise WorkflowValidationError(str(exc)) from exc


class RunRequest(BaseModel):
    """Envelope placed on the run queue."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    attempt: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("workflow_id")
    @classmethod
    def _ensure_workflow_id(cls, v: str) -> str:
        if not v:
            raise ValueError("workflow_id must be a non-empty string")
        return v

    def next_attempt(self) -> "RunRequest":
        """Return a copy of this request for the following attempt."""
        return self.model_copy(
            update={
                "attempt": self.attempt + 1,
                "enqueued_at": datetime.now(timezone.utc),
            }
        )

    @property
    def attempts_left(self) -> int:
        return self.max_attempts - self.attempt

    def to_json(self) -> str:
        """Serialize request to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "RunRequest":
        """Deserialize request from JSON."""
        return cls.model_validate_json(data)
