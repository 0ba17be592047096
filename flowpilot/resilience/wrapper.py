"""Shared rate limiters and circuit breakers around capability calls."""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from ..config import CircuitBreakerConfig, RateLimitConfig, ResilienceConfig
from ..registry import Capability
from .circuit_breaker import CircuitBreaker
from .presets import CIRCUIT_BREAKER_PRESETS, RATE_LIMIT_PRESETS
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Resilience:
    """Owns one rate limiter per platform and one breaker per capability.

    State is process-wide: every run calling the same capability shares the
    same limiter and breaker instances.
    """

    def __init__(self, config: Optional[ResilienceConfig] = None) -> None:
        self._config = config or ResilienceConfig()
        self._limiters: Dict[str, RateLimiter] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}

    def _rate_limit_config(self, platform: str) -> RateLimitConfig:
        if platform in self._config.rate_limits:
            return self._config.rate_limits[platform]
        if self._config.use_presets and platform in RATE_LIMIT_PRESETS:
            return RATE_LIMIT_PRESETS[platform]
        return self._config.default_rate_limit

    def _breaker_config(self, name: str, platform: Optional[str]) -> CircuitBreakerConfig:
        for key in (name, platform):
            if key and key in self._config.circuit_breakers:
                return self._config.circuit_breakers[key]
        if self._config.use_presets and platform in CIRCUIT_BREAKER_PRESETS:
            return CIRCUIT_BREAKER_PRESETS[platform]
        return self._config.default_circuit_breaker

    def limiter_for(self, platform: str) -> RateLimiter:
        limiter = self._limiters.get(platform)
        if limiter is None:
            limiter = RateLimiter.from_config(
                platform,
                self._rate_limit_config(platform),
                admission_timeout=self._config.admission_timeout,
            )
            self._limiters[platform] = limiter
        return limiter

    def breaker_for(self, name: str, platform: Optional[str] = None) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker.from_config(name, self._breaker_config(name, platform))
            self._breakers[name] = breaker
        return breaker

    async def run(
        self,
        name: str,
        platform: str,
        func: Callable[[], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        """Admit through the platform limiter, then call through the breaker."""
        limiter = self.limiter_for(platform)
        breaker = self.breaker_for(name, platform)
        return await limiter.schedule(lambda: breaker.call(func, timeout))

    async def call(self, capability: Capability, bound: Mapping[str, Any]) -> Any:
        """Invoke ``capability`` with ``bound`` inputs under both controls."""
        return await self.run(
            capability.path,
            capability.platform,
            lambda: capability.invoke(bound),
            timeout=capability.timeout,
        )

    def stats(self) -> Dict[str, Any]:
        return {
            "rate_limiters": {name: lim.stats() for name, lim in self._limiters.items()},
            "circuit_breakers": {name: br.stats() for name, br in self._breakers.items()},
        }


def with_resilience(
    resilience: Resilience,
    name: str,
    platform: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate an async function so every call goes through ``resilience``."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await resilience.run(
                name,
                platform or name,
                lambda: func(*args, **kwargs),
                timeout=timeout,
            )

        return wrapper

    return decorator
