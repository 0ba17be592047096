"""Flowpilot: workflow execution engine with resilient capability calls."""

from .contracts import RunRequest, Step, TriggerType, WorkflowDefinition
from .dispatch import RunDispatcher
from .execute import WorkflowExecutor
from .interpreter import StepInterpreter
from .persistence import WorkflowRun, get_repository
from .queue import get_queue
from .registry import ModuleRegistry, capability
from .runtime import Runtime, build_runtime
from .scheduling import Scheduler
from .worker import WorkerPool

__version__ = "0.1.0"
__all__ = [
    "ModuleRegistry",
    "RunDispatcher",
    "RunRequest",
    "Runtime",
    "Scheduler",
    "Step",
    "StepInterpreter",
    "TriggerType",
    "WorkerPool",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowRun",
    "build_runtime",
    "capability",
    "get_queue",
    "get_repository",
]
