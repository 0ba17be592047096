"""Symmetric encryption for secrets at rest."""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class SecretCipher:
    """Fernet wrapper used by the credential service and resolver."""

    def __init__(self, key: Optional[str | bytes] = None) -> None:
        if key is None:
            logger.warning(
                "No encryption key configured; generated an ephemeral key. "
                "Secrets stored in this process cannot be read after restart."
            )
            key = Fernet.generate_key()
        if isinstance(key, str):
            key = key.encode("utf-8")
        self._fernet = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt secret") from exc
