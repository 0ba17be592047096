from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Sequence


class SQLiteBackend:
    """Connection plus blocking query helpers for the SQLite stores.

    Subclasses list their DDL in ``SCHEMA``; the async store methods hand the
    helpers to ``asyncio.to_thread`` so the event loop never blocks on disk.
    """

    SCHEMA: Sequence[str] = ()

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            for statement in self.SCHEMA:
                self._conn.execute(statement)

    def _execute(self, query: str, *params: Any) -> int:
        with self._conn:
            return self._conn.execute(query, params).rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        return self._conn.execute(query, params).fetchall()
