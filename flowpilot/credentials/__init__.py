"""Credential resolution, storage and validation."""

from __future__ import annotations

from typing import Optional

from ..config import FlowpilotConfig, resolve_database_url, sqlite_path
from .analysis import RequiredCredential, analyze_workflow_credentials, platform_usage
from .cipher import SecretCipher
from .models import ResolvedCredential, StoredSecret
from .platforms import (
    PLATFORM_CAPABILITIES,
    AuthMethod,
    CredentialCategory,
    PlatformCapability,
    base_platform,
    get_platform_capability,
)
from .requirements import ApiKeyOnly, EitherCredential, NoCredential, OAuthOnly, requirement_for
from .resolver import CredentialResolver, parse_reference
from .service import CredentialService
from .store import InMemorySecretStore, SecretStore, SQLiteSecretStore
from .validation import validate_credential, validate_credential_value

_store_instance: SecretStore | None = None


def get_secret_store(
    database_url: Optional[str] = None, config: Optional[FlowpilotConfig] = None
) -> SecretStore:
    """Select a secret store backend from ``database_url``.

    Without arguments the previously created store is reused.
    """
    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    url = resolve_database_url(database_url, config)
    _store_instance = SQLiteSecretStore(sqlite_path(url)) if url else InMemorySecretStore()
    return _store_instance


__all__ = [
    "ApiKeyOnly",
    "AuthMethod",
    "CredentialCategory",
    "CredentialResolver",
    "CredentialService",
    "EitherCredential",
    "InMemorySecretStore",
    "NoCredential",
    "OAuthOnly",
    "PLATFORM_CAPABILITIES",
    "PlatformCapability",
    "RequiredCredential",
    "ResolvedCredential",
    "SQLiteSecretStore",
    "SecretCipher",
    "SecretStore",
    "StoredSecret",
    "analyze_workflow_credentials",
    "base_platform",
    "get_platform_capability",
    "get_secret_store",
    "parse_reference",
    "platform_usage",
    "requirement_for",
    "validate_credential",
    "validate_credential_value",
]
