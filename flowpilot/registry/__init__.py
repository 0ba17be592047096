"""Capability registry: dotted path to callable lookup.

The registry is built once at process start by walking capability packages
and is read-only afterwards, so lookups need no synchronisation.
"""

from __future__ import annotations

import difflib
import inspect
import logging
import pkgutil
from importlib import import_module
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from ..constants import DEFAULT_CAPABILITY_PACKAGES
from ..errors import CapabilityNotFoundError
from .models import Capability, CapabilityMeta, ParamDescriptor

logger = logging.getLogger(__name__)

CAPABILITY_ATTR = "__capability__"

CATEGORY_ALIASES = {
    "social media": "social",
    "social-media": "social",
    "socialmedia": "social",
    "artificial-intelligence": "ai",
    "utility": "utilities",
    "util": "utilities",
}


def normalize_path(path: str) -> str:
    """Canonical lookup key: lower-cased with category aliases folded."""
    parts = [part.strip().lower() for part in path.strip().split(".")]
    if parts:
        parts[0] = CATEGORY_ALIASES.get(parts[0], parts[0])
    return ".".join(parts)


def capability(
    platform: Optional[str] = None,
    *,
    category: Optional[str] = None,
    name: Optional[str] = None,
    credentials: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    description: Optional[str] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a function as a capability.

    Args:
        platform: Platform the capability belongs to. Defaults to the module name.
        category: Category override. Defaults to the sub-package under the
            capability root.
        name: Function name used in the dotted path. Defaults to ``__name__``.
        credentials: Mapping of credential-bearing parameter names to the
            platform whose credential fills them.
        timeout: Per-call timeout in seconds, overriding the breaker default.
    """

    meta = CapabilityMeta(
        platform=platform,
        category=category,
        name=name,
        credentials=dict(credentials or {}),
        timeout=timeout,
        description=description,
    )

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, CAPABILITY_ATTR, meta)
        return func

    return decorator


def _capabilities_in_module(module: Any, root: str) -> List[Capability]:
    relative = module.__name__[len(root) :].strip(".").split(".")
    found: List[Capability] = []
    for _, func in inspect.getmembers(module, inspect.isfunction):
        meta: Optional[CapabilityMeta] = getattr(func, CAPABILITY_ATTR, None)
        if meta is None or func.__module__ != module.__name__:
            continue
        category = meta.category or (relative[0] if len(relative) > 1 else "custom")
        platform = meta.platform or relative[-1]
        found.append(
            Capability.from_function(
                func,
                category=category,
                platform=platform,
                name=meta.name,
                credentials=meta.credentials,
                timeout=meta.timeout,
                description=meta.description,
            )
        )
    return found


def discover_capabilities(packages: Iterable[str] = DEFAULT_CAPABILITY_PACKAGES) -> List[Capability]:
    """Import every module below ``packages`` and collect decorated functions."""
    found: List[Capability] = []
    for package_name in packages:
        package = import_module(package_name)
        found.extend(_capabilities_in_module(package, package_name))
        search_path = getattr(package, "__path__", None)
        if search_path is None:
            continue
        for info in pkgutil.walk_packages(search_path, prefix=f"{package_name}."):
            module = import_module(info.name)
            found.extend(_capabilities_in_module(module, package_name))
    logger.debug(f"Discovered {len(found)} capabilities in {list(packages)}")
    return found


class ModuleRegistry:
    """Immutable mapping of dotted capability paths to capabilities."""

    def __init__(self, capabilities: Iterable[Capability]) -> None:
        table: Dict[str, Capability] = {}
        for cap in capabilities:
            key = normalize_path(cap.path)
            if key in table:
                raise ValueError(f"Duplicate capability path: {cap.path}")
            table[key] = cap
        self._table: Mapping[str, Capability] = MappingProxyType(table)

    @classmethod
    def discover(cls, packages: Iterable[str] = DEFAULT_CAPABILITY_PACKAGES) -> "ModuleRegistry":
        return cls(discover_capabilities(packages))

    def resolve(self, path: str) -> Capability:
        """Return the capability registered under ``path``."""
        key = normalize_path(path)
        try:
            return self._table[key]
        except KeyError:
            suggestions = difflib.get_close_matches(key, list(self._table), n=3)
            raise CapabilityNotFoundError(path, suggestions) from None

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_path(path) in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._table.values())

    def paths(self) -> List[str]:
        return sorted(cap.path for cap in self._table.values())

    def describe(self) -> List[Dict[str, Any]]:
        """Summaries suitable for listing in the CLI."""
        return [
            {
                "path": cap.path,
                "params": list(cap.param_names),
                "credentials": cap.credential_params,
                "description": cap.description,
            }
            for cap in sorted(self._table.values(), key=lambda c: c.path)
        ]


__all__ = [
    "Capability",
    "CapabilityMeta",
    "ParamDescriptor",
    "ModuleRegistry",
    "capability",
    "discover_capabilities",
    "normalize_path",
]
