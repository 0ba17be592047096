"""Wiring of the engine's components from configuration."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .config import FlowpilotConfig, load_config
from .credentials import (
    CredentialResolver,
    CredentialService,
    SecretCipher,
    SecretStore,
    get_secret_store,
)
from .dispatch import RunDispatcher
from .execute import WorkflowExecutor
from .interpreter import StepInterpreter
from .persistence import WorkflowRepository, get_repository
from .queue import BaseRunQueue, get_queue
from .registry import ModuleRegistry
from .resilience import Resilience
from .scheduling import ScheduleStore, Scheduler, get_schedule_store
from .worker import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """All long-lived collaborators of one engine process."""

    config: FlowpilotConfig
    registry: ModuleRegistry
    secret_store: SecretStore
    cipher: SecretCipher
    credentials: CredentialService
    resolver: CredentialResolver
    resilience: Resilience
    repository: WorkflowRepository
    interpreter: StepInterpreter
    executor: WorkflowExecutor
    queue: BaseRunQueue
    dispatcher: RunDispatcher
    workers: WorkerPool
    scheduler: Scheduler

    async def serve(self, lifespan: Optional[float] = None) -> None:
        """Run the worker pool and, if enabled, the scheduler poll loop."""
        scheduler_task = None
        if self.config.scheduler.enabled:
            scheduler_task = asyncio.create_task(self.scheduler.start())
        try:
            await self.workers.start(lifespan=lifespan)
        finally:
            if scheduler_task is not None:
                await self.scheduler.stop()
                await scheduler_task


def build_runtime(
    config: Optional[FlowpilotConfig] = None,
    *,
    registry: Optional[ModuleRegistry] = None,
    repository: Optional[WorkflowRepository] = None,
    secret_store: Optional[SecretStore] = None,
    schedule_store: Optional[ScheduleStore] = None,
    queue: Optional[BaseRunQueue] = None,
) -> Runtime:
    """Build a ``Runtime`` from ``config``.

    Without ``config`` the file/environment configuration is loaded and the
    process-wide repository and stores are reused.
    """
    if config is None:
        config = load_config()
        repository = repository or get_repository()
        secret_store = secret_store or get_secret_store()
        schedule_store = schedule_store or get_schedule_store()
    else:
        repository = repository or get_repository(config.database_url, config)
        secret_store = secret_store or get_secret_store(config.database_url, config)
        schedule_store = schedule_store or get_schedule_store(config.database_url, config)

    registry = registry or ModuleRegistry.discover(config.capability_packages)
    cipher = SecretCipher(config.secrets.encryption_key)
    resolver = CredentialResolver(secret_store, cipher)
    resilience = Resilience(config.resilience)
    interpreter = StepInterpreter(registry, resolver, resilience)
    executor = WorkflowExecutor(interpreter, repository)

    queue = queue or get_queue(config=config)
    dispatcher = RunDispatcher(
        queue,
        default_priority=config.queue.default_priority,
        max_attempts=config.queue.max_attempts,
    )
    workers = WorkerPool(
        queue,
        executor,
        dispatcher,
        max_concurrent=config.queue.max_concurrent,
        max_per_workflow=config.queue.max_per_workflow,
        backoff_initial=config.queue.backoff_initial,
        backoff_base=config.queue.backoff_base,
        backoff_jitter=config.queue.backoff_jitter,
    )
    scheduler = Scheduler(
        schedule_store, dispatcher, poll_interval=config.scheduler.poll_interval
    )
    logger.debug(f"Runtime built with {len(registry)} capabilities")
    return Runtime(
        config=config,
        registry=registry,
        secret_store=secret_store,
        cipher=cipher,
        credentials=CredentialService(secret_store, cipher),
        resolver=resolver,
        resilience=resilience,
        repository=repository,
        interpreter=interpreter,
        executor=executor,
        queue=queue,
        dispatcher=dispatcher,
        workers=workers,
        scheduler=scheduler,
    )


__all__ = ["Runtime", "build_runtime"]
