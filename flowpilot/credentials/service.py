"""Creating and listing stored credentials."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from .cipher import SecretCipher
from .models import SecretKind, StoredSecret
from .store import SecretStore
from .validation import validate_credential

logger = logging.getLogger(__name__)


class CredentialService:
    """Validates, encrypts and stores credentials."""

    def __init__(self, store: SecretStore, cipher: SecretCipher) -> None:
        self._store = store
        self._cipher = cipher

    async def store_credential(
        self,
        platform: str,
        value: Optional[str] = None,
        *,
        fields: Optional[Mapping[str, str]] = None,
        credential_type: str = "api_key",
        kind: SecretKind = "api_key",
        key: Optional[str] = None,
        validate: bool = True,
    ) -> StoredSecret:
        """Store a credential under ``key`` (defaults to the platform name).

        Format validation happens here, never at resolution time.

        Raises:
            CredentialFormatError: ``value`` or ``fields`` fail validation.
        """
        if fields:
            credential_type = "multi_field"
        if validate and kind == "api_key":
            validate_credential(platform, credential_type, value=value, fields=fields)

        secret = StoredSecret(
            key=key or platform.lower(),
            kind=kind,
            value=self._cipher.encrypt(value) if value is not None and not fields else None,
            fields={name: self._cipher.encrypt(v) for name, v in (fields or {}).items()},
            credential_type=credential_type,
        )
        await self._store.put(secret)
        logger.info(f"Stored {kind} credential '{secret.key}' for {platform}")
        return secret

    async def delete_credential(self, key: str) -> bool:
        return await self._store.delete(key)

    async def list_credentials(self) -> List[Dict[str, str]]:
        """Metadata of stored credentials, never their values."""
        return [
            {
                "key": secret.key,
                "kind": secret.kind,
                "type": secret.credential_type,
                "created_at": secret.created_at.isoformat(),
            }
            for secret in await self._store.list_secrets()
        ]
