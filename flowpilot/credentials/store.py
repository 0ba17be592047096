"""Secret storage backends."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from ..utils.sqlite import SQLiteBackend
from .models import StoredSecret


class SecretStore(Protocol):
    """Protocol for encrypted secret persistence backends."""

    async def get(self, key: str) -> Optional[StoredSecret]:
        """Return the secret stored under ``key``."""

    async def put(self, secret: StoredSecret) -> None:
        """Insert or replace a secret."""

    async def delete(self, key: str) -> bool:
        """Remove a secret; return whether it existed."""

    async def list_secrets(self) -> List[StoredSecret]:
        """Return all stored secrets (still encrypted)."""


class InMemorySecretStore(SecretStore):
    """Keep encrypted secrets in local memory.

    Useful for tests or when no database is configured.
    """

    def __init__(self) -> None:
        self._secrets: Dict[str, StoredSecret] = {}

    async def get(self, key: str) -> Optional[StoredSecret]:
        return self._secrets.get(key)

    async def put(self, secret: StoredSecret) -> None:
        self._secrets[secret.key] = secret

    async def delete(self, key: str) -> bool:
        return self._secrets.pop(key, None) is not None

    async def list_secrets(self) -> List[StoredSecret]:
        return sorted(self._secrets.values(), key=lambda s: s.key)


class SQLiteSecretStore(SQLiteBackend, SecretStore):
    """Persist encrypted secrets using SQLite."""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS secrets (
            key TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            value TEXT,
            fields TEXT,
            credential_type TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """,
    )

    @staticmethod
    def _to_model(row: sqlite3.Row) -> StoredSecret:
        return StoredSecret(
            key=row["key"],
            kind=row["kind"],
            value=row["value"],
            fields=json.loads(row["fields"]) if row["fields"] else {},
            credential_type=row["credential_type"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Store API
    async def get(self, key: str) -> Optional[StoredSecret]:
        row = await asyncio.to_thread(self._fetchone, "SELECT * FROM secrets WHERE key = ?", key)
        return self._to_model(row) if row else None

    async def put(self, secret: StoredSecret) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO secrets (key, kind, value, fields, credential_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            secret.key,
            secret.kind,
            secret.value,
            json.dumps(secret.fields) if secret.fields else None,
            secret.credential_type,
            secret.created_at.isoformat(),
        )

    async def delete(self, key: str) -> bool:
        count = await asyncio.to_thread(self._execute, "DELETE FROM secrets WHERE key = ?", key)
        return count > 0

    async def list_secrets(self) -> List[StoredSecret]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT * FROM secrets ORDER BY key")
        return [self._to_model(row) for row in rows]
