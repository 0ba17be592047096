"""Error taxonomy for flowpilot.

Every error carries a ``retryable`` flag. The worker pool retries runs whose
terminal error is retryable (transient) and surfaces everything else
immediately.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx


class FlowpilotError(Exception):
    """Base class for all flowpilot errors."""

    retryable: bool = False


# ----------------------------------------------------------------------
# Permanent errors


class CredentialMissingError(FlowpilotError):
    """No stored secret satisfies the resolved credential requirement."""

    def __init__(self, platform: str, required_type: str) -> None:
        self.platform = platform
        self.required_type = required_type
        super().__init__(
            f"Missing {required_type} credential for platform '{platform}'"
        )


class CredentialFormatError(FlowpilotError):
    """A secret failed platform-specific format validation."""

    def __init__(self, platform: str, message: str) -> None:
        self.platform = platform
        super().__init__(f"Invalid credential for '{platform}': {message}")


class CapabilityNotFoundError(FlowpilotError, LookupError):
    """No capability is registered under the requested dotted path."""

    def __init__(self, path: str, suggestions: Optional[list[str]] = None) -> None:
        self.path = path
        self.suggestions = suggestions or []
        message = f"Capability not found: {path}"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)})"
        super().__init__(message)


class InvalidInputError(FlowpilotError):
    """Step inputs could not be bound to a capability's parameters."""


class ConditionError(FlowpilotError):
    """A condition expression could not be parsed or evaluated."""


class LoopLimitExceeded(FlowpilotError):
    """A while loop reached its iteration ceiling."""


class WorkflowNotFoundError(FlowpilotError, LookupError):
    """The requested workflow definition does not exist."""


class WorkflowValidationError(FlowpilotError, ValueError):
    """A workflow definition is structurally invalid."""


class ScheduleBoundsExceeded(FlowpilotError):
    """A schedule has no occurrence inside its start/end bounds."""


class ScheduleStateError(FlowpilotError):
    """A schedule operation is not allowed in the task's current status."""


class ScheduleNotFoundError(FlowpilotError, LookupError):
    pass


class RunCancelledError(FlowpilotError):
    """The run was cancelled between steps."""


# ----------------------------------------------------------------------
# Transient errors


class CircuitOpenError(FlowpilotError):
    """The circuit breaker rejected the call without executing it."""

    retryable = True

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Circuit breaker '{name}' is open")


class RateLimitAdmissionTimeout(FlowpilotError):
    """A call waited too long for rate limiter admission."""

    retryable = True

    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        super().__init__(
            f"Rate limiter '{name}' did not admit call within {timeout:.2f}s"
        )


class CapabilityTimeoutError(FlowpilotError):
    """A capability call exceeded its configured timeout."""

    retryable = True

    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        super().__init__(f"Capability '{name}' timed out after {timeout:.2f}s")


class TransientCapabilityError(FlowpilotError):
    """Raised by capabilities for failures worth retrying (5xx, throttling)."""

    retryable = True


# ----------------------------------------------------------------------
# Step wrapper


class StepExecutionError(FlowpilotError):
    """Failure of a single step, carrying the originating step id."""

    def __init__(self, step_id: str, cause: BaseException, module: Optional[str] = None) -> None:
        self.step_id = step_id
        self.cause = cause
        self.module = module
        self.retryable = is_transient(cause)
        label = f'Step "{step_id}"'
        if module:
            label += f" ({module})"
        super().__init__(f"{label}: {cause}")

    @property
    def error_type(self) -> str:
        return type(self.cause).__name__


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` belongs to the transient error class."""

    if isinstance(exc, FlowpilotError):
        return exc.retryable
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    return False


__all__ = [
    "FlowpilotError",
    "CredentialMissingError",
    "CredentialFormatError",
    "CapabilityNotFoundError",
    "InvalidInputError",
    "ConditionError",
    "LoopLimitExceeded",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
    "ScheduleBoundsExceeded",
    "ScheduleStateError",
    "ScheduleNotFoundError",
    "RunCancelledError",
    "CircuitOpenError",
    "RateLimitAdmissionTimeout",
    "CapabilityTimeoutError",
    "TransientCapabilityError",
    "StepExecutionError",
    "is_transient",
]
