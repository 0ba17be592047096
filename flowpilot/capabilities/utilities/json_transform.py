"""JSON shaping helpers operating on already-resolved values."""

from __future__ import annotations

from typing import Any, Dict, List

from ...registry import capability
from ...templates import MISSING, lookup


@capability(platform="json")
def get(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path from ``data``."""
    value = lookup(data, path)
    return default if value is MISSING else value


@capability(platform="json")
def pick(data: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    """Keep only ``keys`` from a mapping."""
    return {key: data[key] for key in keys if key in data}


@capability(platform="json")
def merge(objects: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow-merge a list of mappings, later entries winning."""
    merged: Dict[str, Any] = {}
    for obj in objects:
        merged.update(obj)
    return merged
