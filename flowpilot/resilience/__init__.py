"""Rate limiting and circuit breaking for capability calls."""

from .circuit_breaker import CircuitBreaker, CircuitState
from .presets import CIRCUIT_BREAKER_PRESETS, RATE_LIMIT_PRESETS
from .rate_limiter import RateLimiter
from .wrapper import Resilience, with_resilience

__all__ = [
    "CIRCUIT_BREAKER_PRESETS",
    "RATE_LIMIT_PRESETS",
    "CircuitBreaker",
    "CircuitState",
    "RateLimiter",
    "Resilience",
    "with_resilience",
]
