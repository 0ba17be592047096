"""Text helpers."""

from __future__ import annotations

from typing import Any, Dict

from ...registry import capability


@capability(platform="text")
def template(text: str, values: Dict[str, Any]) -> str:
    """Fill ``{name}`` placeholders in ``text`` from ``values``."""
    return text.format_map(values)
