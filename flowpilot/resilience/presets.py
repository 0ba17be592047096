"""Per-platform rate limit and circuit breaker presets."""

from __future__ import annotations

from typing import Dict

from ..config import CircuitBreakerConfig, RateLimitConfig

_MINUTE = 60_000
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

RATE_LIMIT_PRESETS: Dict[str, RateLimitConfig] = {
    "twitter": RateLimitConfig(
        max_concurrent=1, min_time_ms=3_000, reservoir=300, refill_amount=300,
        refill_interval_ms=15 * _MINUTE,
    ),
    "twitter-user": RateLimitConfig(
        max_concurrent=1, min_time_ms=30_000, reservoir=50, refill_amount=50,
        refill_interval_ms=_HOUR,
    ),
    "youtube": RateLimitConfig(
        max_concurrent=1, min_time_ms=10_000, reservoir=10_000, refill_amount=10_000,
        refill_interval_ms=_DAY,
    ),
    "openai": RateLimitConfig(
        max_concurrent=3, min_time_ms=150, reservoir=500, refill_amount=500,
        refill_interval_ms=_MINUTE,
    ),
    "instagram": RateLimitConfig(
        max_concurrent=1, min_time_ms=20_000, reservoir=200, refill_amount=200,
        refill_interval_ms=_HOUR,
    ),
    "rapidapi": RateLimitConfig(
        max_concurrent=1, min_time_ms=1_000, reservoir=100, refill_amount=100,
        refill_interval_ms=_MINUTE,
    ),
    "wordpress": RateLimitConfig(
        max_concurrent=1, min_time_ms=72_000, reservoir=50, refill_amount=50,
        refill_interval_ms=_HOUR,
    ),
}

CIRCUIT_BREAKER_PRESETS: Dict[str, CircuitBreakerConfig] = {
    "twitter": CircuitBreakerConfig(
        timeout_ms=15_000, error_threshold_percentage=60, reset_timeout_ms=60_000,
        volume_threshold=3,
    ),
    "youtube": CircuitBreakerConfig(
        timeout_ms=10_000, error_threshold_percentage=50, reset_timeout_ms=120_000,
        volume_threshold=3,
    ),
    "openai": CircuitBreakerConfig(
        timeout_ms=60_000, error_threshold_percentage=50, reset_timeout_ms=30_000,
        volume_threshold=3,
    ),
    "instagram": CircuitBreakerConfig(
        timeout_ms=10_000, error_threshold_percentage=50, reset_timeout_ms=60_000,
        volume_threshold=3,
    ),
    "rapidapi": CircuitBreakerConfig(
        timeout_ms=10_000, error_threshold_percentage=50, reset_timeout_ms=60_000,
        volume_threshold=5,
    ),
    "wordpress": CircuitBreakerConfig(
        timeout_ms=15_000, error_threshold_percentage=50, reset_timeout_ms=60_000,
        volume_threshold=3,
    ),
}
