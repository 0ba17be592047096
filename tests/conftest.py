"""Shared helpers for building engines out of throwaway capabilities."""

from typing import Callable

import pytest

from flowpilot.config import ResilienceConfig
from flowpilot.credentials import CredentialResolver, InMemorySecretStore, SecretCipher
from flowpilot.execute import WorkflowExecutor
from flowpilot.interpreter import StepInterpreter
from flowpilot.persistence import InMemoryWorkflowRepository
from flowpilot.registry import Capability, ModuleRegistry
from flowpilot.resilience import Resilience


def build_registry(*funcs: Callable, category: str = "test", platform: str = "demo", **kwargs):
    return ModuleRegistry(
        Capability.from_function(func, category=category, platform=platform, **kwargs)
        for func in funcs
    )


def build_interpreter(registry: ModuleRegistry, store=None, cipher=None, resilience=None):
    cipher = cipher or SecretCipher(SecretCipher.generate_key())
    resolver = CredentialResolver(store or InMemorySecretStore(), cipher)
    return StepInterpreter(registry, resolver, resilience or Resilience(ResilienceConfig()))


@pytest.fixture
def make_registry():
    return build_registry


@pytest.fixture
def make_interpreter():
    return build_interpreter


@pytest.fixture
def make_executor():
    def _make(registry: ModuleRegistry, repository=None, **kwargs):
        repository = repository or InMemoryWorkflowRepository()
        return WorkflowExecutor(build_interpreter(registry, **kwargs), repository), repository

    return _make
