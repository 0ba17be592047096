"""Step interpreter: walks a workflow's step tree within one run."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping

from .context import ExecutionContext, StepStatus
from .contracts import Step, WorkflowDefinition
from .credentials import CredentialResolver, base_platform, platform_usage
from .credentials.analysis import credential_references
from .errors import (
    ConditionError,
    InvalidInputError,
    LoopLimitExceeded,
    RunCancelledError,
    StepExecutionError,
)
from .registry import ModuleRegistry
from .resilience import Resilience
from .templates import evaluate_condition, resolve_templates

logger = logging.getLogger(__name__)


class StepInterpreter:
    """Execute steps strictly sequentially against one ``ExecutionContext``.

    Leaf steps resolve their capability, credentials and inputs, then call
    through the resilience layer. A failure aborts the run unless an enclosing
    composite step declares a fallback that has not been attempted yet.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        resolver: CredentialResolver,
        resilience: Resilience,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._resilience = resilience
        self._handlers: Dict[str, Callable[[Step, ExecutionContext], Awaitable[None]]] = {
            "action": self._run_action,
            "condition": self._run_condition,
            "forEach": self._run_for_each,
            "while": self._run_while,
            "group": self._run_group,
        }

    async def run(self, definition: WorkflowDefinition, ctx: ExecutionContext) -> Any:
        """Run every step of ``definition`` and return the run output."""
        ctx.platform_usage = platform_usage(definition)
        for step in definition.walk():
            ctx.mark(step.id, StepStatus.PENDING)
        await self._run_steps(definition.steps, ctx)
        if definition.return_value is not None:
            return resolve_templates(definition.return_value, ctx.variables)
        return ctx.last_output

    async def _run_steps(self, steps: Iterable[Step], ctx: ExecutionContext) -> None:
        for step in steps:
            await self.run_step(step, ctx)

    async def run_step(self, step: Step, ctx: ExecutionContext) -> None:
        if ctx.cancel_requested:
            raise RunCancelledError(f"Run {ctx.run_id} cancelled before step {step.id}")

        ctx.mark(step.id, StepStatus.RUNNING)
        logger.debug(f"Running step {step.id} ({step.kind}) in run {ctx.run_id}")
        try:
            await self._handlers[step.kind](step, ctx)
        except StepExecutionError as exc:
            if not step.fallback:
                ctx.mark(step.id, StepStatus.FAILED)
                raise
            logger.info(f"Step {step.id} failed at {exc.step_id}, running fallback")
            ctx.set_variable("error", {"step": exc.step_id, "message": str(exc.cause)})
            try:
                await self._run_steps(step.fallback, ctx)
            except BaseException:
                ctx.mark(step.id, StepStatus.FAILED)
                raise
        except BaseException:
            ctx.mark(step.id, StepStatus.FAILED)
            raise
        ctx.mark(step.id, StepStatus.SUCCEEDED)

    # ------------------------------------------------------------------
    # Leaf steps
    async def _run_action(self, step: Step, ctx: ExecutionContext) -> None:
        try:
            capability = self._registry.resolve(step.module or "")
            inputs = dict(step.inputs)
            for param, platform in capability.credential_params.items():
                inputs.setdefault(param, f"{{{{credential.{platform}}}}}")
            await self._resolve_credentials(inputs, ctx)
            bound = capability.bind(resolve_templates(inputs, ctx.variables))
            result = await self._resilience.call(capability, bound)
        except Exception as exc:
            raise StepExecutionError(step.id, exc, module=step.module) from exc
        ctx.set_output(step.id, result, step.output_as)
        logger.debug(f"Step {step.id} succeeded")

    async def _resolve_credentials(self, inputs: Mapping[str, Any], ctx: ExecutionContext) -> None:
        for name in credential_references(inputs):
            if name in ctx.credentials:
                continue
            functions = ctx.platform_usage.get(base_platform(name), set())
            ctx.add_credential(name, await self._resolver.resolve(name, functions))

    # ------------------------------------------------------------------
    # Composite steps
    def _condition(self, step: Step, ctx: ExecutionContext) -> bool:
        try:
            return evaluate_condition(step.condition, ctx.variables)
        except ConditionError as exc:
            raise StepExecutionError(step.id, exc) from exc

    async def _run_condition(self, step: Step, ctx: ExecutionContext) -> None:
        result = self._condition(step, ctx)
        branch = step.then if result else step.else_
        ctx.step_outputs[step.id] = {"condition": result, "branch": "then" if result else "else"}
        if not branch:
            return
        try:
            await self._run_steps(branch, ctx)
        except StepExecutionError:
            if not (result and step.else_on_error and step.else_):
                raise
            logger.info(f"Condition {step.id}: then branch failed, running else branch")
            ctx.step_outputs[step.id] = {"condition": result, "branch": "else"}
            await self._run_steps(step.else_, ctx)

    async def _run_for_each(self, step: Step, ctx: ExecutionContext) -> None:
        items = resolve_templates(step.array, ctx.variables)
        if not isinstance(items, (list, tuple)):
            raise StepExecutionError(
                step.id,
                InvalidInputError(
                    f"forEach array must resolve to a list, got {type(items).__name__}"
                ),
            )
        results = []
        for index, item in enumerate(items):
            ctx.set_variable(step.item_as, item)
            if step.index_as:
                ctx.set_variable(step.index_as, index)
            await self._run_steps(step.steps or (), ctx)
            results.append(ctx.last_output)
        ctx.step_outputs[step.id] = results
        ctx.variables[step.id] = results

    async def _run_while(self, step: Step, ctx: ExecutionContext) -> None:
        iterations = 0
        while self._condition(step, ctx):
            if iterations >= step.max_iterations:
                raise StepExecutionError(
                    step.id,
                    LoopLimitExceeded(
                        f"while loop exceeded {step.max_iterations} iterations"
                    ),
                )
            await self._run_steps(step.steps or (), ctx)
            iterations += 1
        ctx.step_outputs[step.id] = {"iterations": iterations}

    async def _run_group(self, step: Step, ctx: ExecutionContext) -> None:
        await self._run_steps(step.steps or (), ctx)


__all__ = ["StepInterpreter"]
