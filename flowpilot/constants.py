"""Default values shared across flowpilot components."""

from __future__ import annotations

# Queue / worker defaults
DEFAULT_PRIORITY = 5
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_CONCURRENT = 20
DEFAULT_MAX_PER_WORKFLOW = 5
DEFAULT_BACKOFF_INITIAL = 10.0
DEFAULT_BACKOFF_BASE = 2.0

# Interpreter defaults
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_ITEM_NAME = "item"

# Scheduler defaults
DEFAULT_POLL_INTERVAL = 30.0

# Capability discovery
DEFAULT_CAPABILITY_PACKAGES = ("flowpilot.capabilities",)

# Redis key prefix for queue data
REDIS_KEY_PREFIX = "flowpilot"
