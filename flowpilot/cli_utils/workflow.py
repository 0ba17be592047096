"""Helpers for the CLI: reading workflow files and parsing option values."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from flowpilot.contracts import WorkflowDefinition
from flowpilot.errors import WorkflowValidationError
from flowpilot.registry import ModuleRegistry
from flowpilot.scheduling import Interval, TimeWindow

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$")
_UNIT_ALIASES = {
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
    "w": "weeks",
    "week": "weeks",
    "weeks": "weeks",
    "mo": "months",
    "month": "months",
    "months": "months",
}


def _load_workflow_file(path: Path) -> WorkflowDefinition:
    """Read a YAML or JSON workflow file; the file stem is the default id."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        raise WorkflowValidationError(f"{path} is empty")
    if isinstance(data, dict) and data.get("id"):
        return WorkflowDefinition.parse(data)
    return WorkflowDefinition.parse(data, workflow_id=path.stem)


def _unknown_modules(definition: WorkflowDefinition, registry: ModuleRegistry) -> List[str]:
    return [module for module in definition.modules() if module not in registry]


def _parse_json_option(value: Optional[str]) -> Dict[str, Any]:
    if not value:
        return {}
    data = json.loads(value)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def _parse_interval(value: str) -> Interval:
    """Parse ``"15 minutes"``, ``"2h"`` or ``"1 day"`` into an ``Interval``."""
    match = _INTERVAL_RE.match(value)
    unit = _UNIT_ALIASES.get(match.group(2).lower()) if match else None
    if not match or unit is None:
        raise ValueError(f"Cannot parse interval {value!r}")
    return Interval(value=int(match.group(1)), unit=unit)


def _parse_window(value: str) -> TimeWindow:
    start, sep, end = value.partition("-")
    if not sep:
        raise ValueError("Time window must look like HH:MM-HH:MM")
    return TimeWindow(start=start.strip(), end=end.strip())


def _parse_days(value: str) -> List[int]:
    return [int(part) for part in value.split(",") if part.strip()]


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
