"""Token-bucket rate limiter with minimum spacing and a refillable reservoir."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..config import RateLimitConfig
from ..errors import RateLimitAdmissionTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Admit calls subject to spacing, burst budget and concurrency limits.

    Admission is FIFO: waiters queue on a fair lock and the head of the queue
    sleeps until both the spacing and the reservoir allow it through. The
    reservoir is reset to ``refill_amount`` every ``refill_interval_ms``; when
    no refill is configured an exhausted reservoir rejects calls outright.
    """

    def __init__(
        self,
        name: str,
        max_concurrent: Optional[int] = None,
        min_time_ms: int = 0,
        reservoir: Optional[int] = None,
        refill_amount: Optional[int] = None,
        refill_interval_ms: Optional[int] = None,
        admission_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_concurrent = max_concurrent
        self.min_time = min_time_ms / 1000
        self.refill_amount = refill_amount if refill_amount is not None else reservoir
        self.refill_interval = refill_interval_ms / 1000 if refill_interval_ms else None
        self.admission_timeout = admission_timeout
        self._clock = clock
        self._reservoir = reservoir
        self._last_refill = clock()
        self._next_start = 0.0
        self._admission = asyncio.Lock()
        self._slots = asyncio.Semaphore(max_concurrent) if max_concurrent else None
        self._in_flight = 0
        self._admitted = 0

    @classmethod
    def from_config(
        cls, name: str, config: RateLimitConfig, admission_timeout: Optional[float] = None
    ) -> "RateLimiter":
        return cls(
            name,
            max_concurrent=config.max_concurrent,
            min_time_ms=config.min_time_ms,
            reservoir=config.reservoir,
            refill_amount=config.refill_amount,
            refill_interval_ms=config.refill_interval_ms,
            admission_timeout=admission_timeout,
        )

    @property
    def reservoir(self) -> Optional[int]:
        self._refill(self._clock())
        return self._reservoir

    def _refill(self, now: float) -> None:
        if self._reservoir is None or self.refill_interval is None:
            return
        periods = int((now - self._last_refill) // self.refill_interval)
        if periods > 0:
            self._reservoir = self.refill_amount
            self._last_refill += periods * self.refill_interval

    def _delay(self, now: float) -> float:
        delay = max(0.0, self._next_start - now)
        if self._reservoir is not None and self._reservoir <= 0:
            if self.refill_interval is None:
                raise RateLimitAdmissionTimeout(self.name, 0.0)
            delay = max(delay, self._last_refill + self.refill_interval - now)
        return delay

    async def _admit(self) -> None:
        async with self._admission:
            if self._slots is not None:
                await self._slots.acquire()
            try:
                while True:
                    now = self._clock()
                    self._refill(now)
                    delay = self._delay(now)
                    if delay <= 0:
                        break
                    await asyncio.sleep(delay)
                if self._reservoir is not None:
                    self._reservoir -= 1
                self._next_start = self._clock() + self.min_time
                self._admitted += 1
            except BaseException:
                if self._slots is not None:
                    self._slots.release()
                raise

    async def acquire(self) -> None:
        """Wait for admission, honouring the admission timeout."""
        if self.admission_timeout is None:
            await self._admit()
            return
        try:
            await asyncio.wait_for(self._admit(), self.admission_timeout)
        except asyncio.TimeoutError:
            raise RateLimitAdmissionTimeout(self.name, self.admission_timeout) from None

    def release(self) -> None:
        if self._slots is not None:
            self._slots.release()

    async def schedule(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` once admitted."""
        await self.acquire()
        self._in_flight += 1
        try:
            return await func()
        finally:
            self._in_flight -= 1
            self.release()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "reservoir": self.reservoir,
            "in_flight": self._in_flight,
            "admitted": self._admitted,
            "max_concurrent": self.max_concurrent,
            "min_time_ms": int(self.min_time * 1000),
        }
