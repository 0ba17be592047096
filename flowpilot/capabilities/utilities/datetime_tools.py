"""Date and time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from ...registry import capability

_UNITS = {
    "seconds": "seconds",
    "minutes": "minutes",
    "hours": "hours",
    "days": "days",
    "weeks": "weeks",
}


def _parse(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@capability(platform="datetime")
def now() -> str:
    """Current UTC time as ISO 8601."""
    return datetime.now(timezone.utc).isoformat()


@capability(platform="datetime")
def add(amount: float, unit: str = "days", date: Optional[str] = None) -> str:
    """Add ``amount`` ``unit`` to ``date`` (defaults to now)."""
    key = _UNITS.get(unit.lower().rstrip("s") + "s")
    if key is None:
        raise ValueError(f"Unsupported unit: {unit}")
    return (_parse(date) + timedelta(**{key: amount})).isoformat()


@capability(platform="datetime", name="format")
def format_date(date: Optional[str] = None, pattern: str = "%Y-%m-%d") -> str:
    """Format ``date`` with a strftime pattern."""
    return _parse(date).strftime(pattern)
