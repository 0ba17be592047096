"""Interface shared by the run queue backends."""

from __future__ import annotations

import abc
from typing import Optional

from ..contracts import RunRequest


class BaseRunQueue(metaclass=abc.ABCMeta):
    """Priority queue of run requests.

    Lower ``priority`` values are served first; equal priorities are served
    in enqueue order.
    """

    async def connect(self) -> None:
        """Acquire backend resources. Nothing to do for local queues."""

    async def disconnect(self) -> None:
        """Release backend resources. Nothing to do for local queues."""

    @abc.abstractmethod
    async def put(self, request: RunRequest) -> None:
        """Enqueue ``request`` at its own priority."""

    @abc.abstractmethod
    async def get(self, timeout: Optional[float] = None) -> Optional[RunRequest]:
        """Pop the most urgent request.

        Waits up to ``timeout`` seconds (forever when ``None``) and returns
        ``None`` if nothing arrived in time.
        """

    @abc.abstractmethod
    async def remove(self, job_id: str) -> bool:
        """Drop a queued request; return whether it was found."""

    @abc.abstractmethod
    async def size(self) -> int:
        """Number of queued requests."""
