"""Rolling-window circuit breaker."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple, TypeVar

from ..config import CircuitBreakerConfig
from ..errors import CapabilityTimeoutError, CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stop calling a failing dependency for a while.

    Outcomes are counted inside a rolling window. Once at least
    ``volume_threshold`` calls were seen and the failure share reaches
    ``error_threshold_percentage``, the breaker opens for ``reset_timeout_ms``.
    After that a single trial call is let through: success closes the breaker,
    failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        timeout_ms: Optional[int] = 10_000,
        error_threshold_percentage: float = 50,
        reset_timeout_ms: int = 30_000,
        volume_threshold: int = 5,
        rolling_window_ms: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.timeout = timeout_ms / 1000 if timeout_ms else None
        self.error_threshold_percentage = error_threshold_percentage
        self.reset_timeout = reset_timeout_ms / 1000
        self.volume_threshold = volume_threshold
        self.rolling_window = rolling_window_ms / 1000
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._outcomes: Deque[Tuple[float, bool]] = deque()
        self._rejected = 0

    @classmethod
    def from_config(cls, name: str, config: CircuitBreakerConfig) -> "CircuitBreaker":
        return cls(
            name,
            timeout_ms=config.timeout_ms,
            error_threshold_percentage=config.error_threshold_percentage,
            reset_timeout_ms=config.reset_timeout_ms,
            volume_threshold=config.volume_threshold,
            rolling_window_ms=config.rolling_window_ms,
        )

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            return CircuitState.HALF_OPEN
        return self._state

    def _prune(self, now: float) -> None:
        while self._outcomes and now - self._outcomes[0][0] > self.rolling_window:
            self._outcomes.popleft()

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._trial_in_flight = False
        self._outcomes.clear()
        logger.warning(f"Circuit breaker '{self.name}' opened")

    def _before_call(self) -> bool:
        """Admit or reject a call; return whether it is the half-open trial."""
        state = self.state
        if state == CircuitState.CLOSED:
            return False
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = True
            logger.info(f"Circuit breaker '{self.name}' half-open, allowing trial call")
            return True
        self._rejected += 1
        raise CircuitOpenError(self.name)

    def _record(self, ok: bool, trial: bool) -> None:
        now = self._clock()
        if trial:
            self._trial_in_flight = False
            if ok:
                self._state = CircuitState.CLOSED
                self._outcomes.clear()
                logger.info(f"Circuit breaker '{self.name}' closed")
            else:
                self._open(now)
            return
        if self._state != CircuitState.CLOSED:
            return
        self._outcomes.append((now, ok))
        self._prune(now)
        total = len(self._outcomes)
        if total < self.volume_threshold:
            return
        failures = sum(1 for _, success in self._outcomes if not success)
        if failures * 100 / total >= self.error_threshold_percentage:
            self._open(now)

    async def call(self, func: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """Run ``func`` unless the breaker is open.

        Raises:
            CircuitOpenError: the call was rejected without running ``func``.
            CapabilityTimeoutError: ``func`` exceeded the call timeout.
        """
        trial = self._before_call()
        timeout = timeout if timeout is not None else self.timeout
        try:
            if timeout:
                result = await asyncio.wait_for(func(), timeout)
            else:
                result = await func()
        except asyncio.TimeoutError:
            self._record(False, trial)
            raise CapabilityTimeoutError(self.name, timeout or 0.0) from None
        except Exception:
            self._record(False, trial)
            raise
        except BaseException:
            if trial:
                self._trial_in_flight = False
            raise
        self._record(True, trial)
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False
        self._outcomes.clear()

    def stats(self) -> Dict[str, Any]:
        self._prune(self._clock())
        return {
            "name": self.name,
            "state": self.state.value,
            "window_calls": len(self._outcomes),
            "window_failures": sum(1 for _, ok in self._outcomes if not ok),
            "rejected": self._rejected,
        }
