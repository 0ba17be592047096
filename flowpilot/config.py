from __future__ import annotations

import os
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_INITIAL,
    DEFAULT_CAPABILITY_PACKAGES,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_PER_WORKFLOW,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PRIORITY,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis queue backend."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class QueueConfig(BaseModel):
    """Run queue and worker pool settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=1)
    max_per_workflow: int = Field(default=DEFAULT_MAX_PER_WORKFLOW, ge=1)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff_initial: float = Field(default=DEFAULT_BACKOFF_INITIAL, ge=0)
    backoff_base: float = Field(default=DEFAULT_BACKOFF_BASE, ge=1)
    backoff_jitter: float = Field(default=0.5, ge=0)
    default_priority: int = DEFAULT_PRIORITY


class SchedulerConfig(BaseModel):
    """Schedule polling settings."""

    enabled: bool = True
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)


class RateLimitConfig(BaseModel):
    """Token bucket settings for one platform."""

    max_concurrent: Optional[int] = Field(default=None, ge=1)
    min_time_ms: int = Field(default=0, ge=0)
    reservoir: Optional[int] = Field(default=None, ge=0)
    refill_amount: Optional[int] = Field(default=None, ge=0)
    refill_interval_ms: Optional[int] = Field(default=None, gt=0)


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker settings for one capability."""

    timeout_ms: Optional[int] = Field(default=10_000, gt=0)
    error_threshold_percentage: float = Field(default=50, gt=0, le=100)
    reset_timeout_ms: int = Field(default=30_000, gt=0)
    volume_threshold: int = Field(default=5, ge=1)
    rolling_window_ms: int = Field(default=10_000, gt=0)


class ResilienceConfig(BaseModel):
    """Defaults and overrides for rate limiters and circuit breakers."""

    default_rate_limit: RateLimitConfig = RateLimitConfig()
    default_circuit_breaker: CircuitBreakerConfig = CircuitBreakerConfig()
    rate_limits: Dict[str, RateLimitConfig] = Field(default_factory=dict)
    circuit_breakers: Dict[str, CircuitBreakerConfig] = Field(default_factory=dict)
    admission_timeout: Optional[float] = Field(default=None, gt=0)
    use_presets: bool = True


class SecretsConfig(BaseModel):
    """Secret storage settings."""

    encryption_key: Optional[str] = None


class FlowpilotConfig(BaseModel):
    """Top-level configuration model."""

    queue: QueueConfig = QueueConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    resilience: ResilienceConfig = ResilienceConfig()
    secrets: SecretsConfig = SecretsConfig()
    database_url: Optional[str] = None
    capability_packages: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CAPABILITY_PACKAGES)
    )
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> FlowpilotConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWPILOT_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWPILOT_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowpilotConfig(**data)
    else:
        config = FlowpilotConfig()

    env_db_url = os.getenv("FLOWPILOT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_key = os.getenv("FLOWPILOT_ENCRYPTION_KEY")
    if env_key:
        config.secrets.encryption_key = env_key
    env_queue = os.getenv("FLOWPILOT_QUEUE")
    if env_queue:
        config.queue.backend = env_queue.lower()
    return config


def resolve_database_url(
    database_url: Optional[str] = None, config: Optional[FlowpilotConfig] = None
) -> Optional[str]:
    """Pick the database URL shared by the repository and store factories.

    An explicit ``database_url`` wins, then ``FLOWPILOT_DATABASE_URL`` and
    ``DATABASE_URL``, then ``config.database_url``. ``None`` means in-memory.
    """
    if database_url:
        return database_url
    config = config or load_config()
    return (
        os.getenv("FLOWPILOT_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )


def sqlite_path(database_url: str) -> str:
    """Return the file path of a ``sqlite://`` URL or reject other schemes."""
    scheme, sep, path = database_url.partition("://")
    if not sep or scheme != "sqlite":
        raise ValueError(f"Unsupported database backend: {database_url}")
    return path
