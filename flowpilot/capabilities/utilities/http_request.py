"""Generic HTTP capability backed by httpx."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ...errors import TransientCapabilityError
from ...registry import capability

logger = logging.getLogger(__name__)


def _decode(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        return response.json()
    return response.text


@capability(platform="http", timeout=30.0)
async def request(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    body: Any = None,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """Perform an HTTP request and return status, headers and decoded body."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.request(
            method.upper(),
            url,
            headers=headers,
            params=params,
            json=body if isinstance(body, (dict, list)) else None,
            content=body if isinstance(body, (str, bytes)) else None,
        )
    logger.debug(f"{method.upper()} {url} -> {response.status_code}")
    if response.status_code >= 500 or response.status_code == 429:
        raise TransientCapabilityError(
            f"{method.upper()} {url} failed with status {response.status_code}"
        )
    response.raise_for_status()
    return {
        "status": response.status_code,
        "headers": dict(response.headers),
        "data": _decode(response),
    }


@capability(platform="http", timeout=30.0)
async def get(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Shorthand for a GET request."""
    return await request(url, method="GET", headers=headers, params=params)
