"""Pydantic models describing registered capabilities."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

# Single-mapping wrappers that are unwrapped into keyword arguments.
WRAPPER_KEYS = ("params", "options")


class ParamDescriptor(BaseModel):
    """Describes a single input parameter of a capability."""

    model_config = ConfigDict(frozen=True)

    name: str
    required: bool = True
    default_json: Optional[Any] = None
    credential: Optional[str] = Field(
        default=None, description="Platform whose credential fills this parameter"
    )


class CapabilityMeta(BaseModel):
    """Out-of-band declaration attached by the ``@capability`` decorator."""

    model_config = ConfigDict(frozen=True)

    platform: Optional[str] = None
    category: Optional[str] = None
    name: Optional[str] = None
    credentials: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None
    description: Optional[str] = None


class Capability(BaseModel):
    """A named, callable unit wrapping one external-service operation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str
    category: str
    platform: str
    function: str
    entry: Callable[..., Any]
    params: Tuple[ParamDescriptor, ...] = ()
    accepts_extra: bool = False
    timeout: Optional[float] = None
    description: Optional[str] = None

    @classmethod
    def from_function(
        cls,
        func: Callable[..., Any],
        *,
        category: str,
        platform: str,
        name: Optional[str] = None,
        credentials: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        description: Optional[str] = None,
    ) -> "Capability":
        """Build a capability by introspecting ``func``'s signature."""
        credentials = dict(credentials or {})
        params = []
        accepts_extra = False
        for param in inspect.signature(func).parameters.values():
            if param.kind is inspect.Parameter.VAR_KEYWORD:
                accepts_extra = True
                continue
            if param.kind is inspect.Parameter.VAR_POSITIONAL:
                continue
            has_default = param.default is not inspect.Parameter.empty
            params.append(
                ParamDescriptor(
                    name=param.name,
                    required=not has_default and param.name not in credentials,
                    default_json=param.default if has_default else None,
                    credential=credentials.get(param.name),
                )
            )
        function = name or func.__name__
        doc = description or inspect.getdoc(func)
        return cls(
            path=f"{category}.{platform}.{function}",
            category=category,
            platform=platform,
            function=function,
            entry=func,
            params=tuple(params),
            accepts_extra=accepts_extra,
            timeout=timeout,
            description=doc.splitlines()[0] if doc else None,
        )

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)

    @property
    def credential_params(self) -> Dict[str, str]:
        """Map credential-bearing parameter names to their platform."""
        return {p.name: p.credential for p in self.params if p.credential}

    def bind(self, inputs: Mapping[str, Any]) -> Dict[str, Any]:
        """Bind resolved inputs to this capability's parameter names."""
        names = set(self.param_names)
        values = dict(inputs)
        for key in WRAPPER_KEYS:
            wrapped = values.get(key)
            if key not in names and isinstance(wrapped, Mapping):
                values.pop(key)
                values = {**wrapped, **values}

        bound = {k: v for k, v in values.items() if k in names}
        extra = [k for k in values if k not in names]
        if extra:
            if self.accepts_extra:
                bound.update({k: values[k] for k in extra})
            else:
                logger.warning(
                    f"Ignoring unknown inputs for {self.path}: {', '.join(sorted(extra))}"
                )

        missing = [p.name for p in self.params if p.required and p.name not in bound]
        if missing:
            raise InvalidInputError(
                f"Missing required input(s) for {self.path}: {', '.join(missing)}. "
                f"Expected: {', '.join(self.param_names) or '(none)'}; "
                f"provided: {', '.join(sorted(values)) or '(none)'}"
            )
        return bound

    async def invoke(self, bound: Mapping[str, Any]) -> Any:
        """Call the entry point, off-loading synchronous functions to a thread."""
        if inspect.iscoroutinefunction(self.entry):
            return await self.entry(**bound)
        result = await asyncio.to_thread(self.entry, **bound)
        if inspect.isawaitable(result):
            return await result
        return result
