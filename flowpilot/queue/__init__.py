"""Run queues: in-process heap or Redis sorted set."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowpilotConfig, load_config
from .base import BaseRunQueue
from .inmemory import InMemoryRunQueue

QUEUE_BACKENDS = ("inmemory", "redis")


def get_queue(
    backend: Optional[str] = None, config: Optional[FlowpilotConfig] = None
) -> BaseRunQueue:
    """Build the run queue named by ``backend``, ``FLOWPILOT_QUEUE`` or config.

    Each call returns a fresh queue object; two Redis queues with the same
    name share their jobs through the server.
    """
    config = config or load_config()
    name = (backend or os.getenv("FLOWPILOT_QUEUE") or config.queue.backend).lower()
    if name not in QUEUE_BACKENDS:
        raise ValueError(f"Unsupported queue backend: {name}")

    if name == "inmemory":
        return InMemoryRunQueue()

    from .redis import RedisRunQueue

    settings = config.queue.redis
    return RedisRunQueue(
        host=settings.host, port=settings.port, db=settings.db, password=settings.password
    )


__all__ = ["BaseRunQueue", "InMemoryRunQueue", "QUEUE_BACKENDS", "get_queue"]
