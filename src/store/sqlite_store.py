# src/store/sqlite_store.py
"""SQLite-based durable store (STORE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. ``BEGIN IMMEDIATE`` takes
the database write lock before the read, so concurrent processes sharing
the file serialize through :meth:`SqliteKVStore.transact`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from sitelift.core.errors import StoreError
from sitelift.store.base_store import DELETE, KEEP, BaseKVStore, Mutation, R

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    expires_at REAL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_expires_at ON kv_entries(expires_at);
"""


class SqliteKVStore(BaseKVStore):
    """SQLite-backed store for single-host deployments."""

    def __init__(self, db_path: Path | str, timeout_s: float = 5.0) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode: transactions are opened explicitly.
        self._conn = sqlite3.connect(
            str(self._db_path), timeout=timeout_s, isolation_level=None,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            row = self._conn.execute(
                "SELECT data FROM kv_entries WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError("get", key, e) from e
        return self._decode(key, row)

    async def set(
        self, key: str, value: dict[str, Any], expires_at: float | None = None,
    ) -> None:
        try:
            self._conn.execute(
                """INSERT OR REPLACE INTO kv_entries (key, data, expires_at)
                   VALUES (?, ?, ?)""",
                (key, json.dumps(value), expires_at),
            )
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StoreError("set", key, e) from e

    async def delete(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreError("delete", key, e) from e

    async def transact(self, key: str, fn: Mutation[R]) -> R:
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError("transact", key, e) from e

        try:
            row = self._conn.execute(
                "SELECT data, expires_at FROM kv_entries WHERE key = ?", (key,)
            ).fetchone()
            new_value, result = fn(self._decode_for_update(key, row))
            if new_value is DELETE:
                self._conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            elif new_value is not KEEP:
                expires_at = row[1] if row is not None else None
                self._conn.execute(
                    """INSERT OR REPLACE INTO kv_entries (key, data, expires_at)
                       VALUES (?, ?, ?)""",
                    (key, json.dumps(new_value), expires_at),
                )
            self._conn.execute("COMMIT")
            return result
        except sqlite3.Error as e:
            self._rollback()
            raise StoreError("transact", key, e) from e
        except Exception:
            self._rollback()
            raise

    async def scan(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        try:
            rows = self._conn.execute(
                "SELECT key, data FROM kv_entries WHERE key LIKE ? ESCAPE '\\' "
                "ORDER BY key",
                (f"{escaped}%",),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError("scan", prefix, e) from e

        entries: list[tuple[str, dict[str, Any]]] = []
        for key, data in rows:
            try:
                entries.append((key, json.loads(data)))
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable store entry %s", key)
        return entries

    async def purge_expired(self, now: float) -> int:
        try:
            cursor = self._conn.execute(
                "DELETE FROM kv_entries WHERE expires_at IS NOT NULL AND expires_at < ?",
                (now,),
            )
        except sqlite3.Error as e:
            raise StoreError("purge_expired", "*", e) from e
        return cursor.rowcount

    async def close(self) -> None:
        self._conn.close()

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.debug("Rollback failed (no active transaction)")

    @staticmethod
    def _decode(key: str, row: tuple | None) -> dict[str, Any] | None:
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StoreError("decode", key, e) from e

    @classmethod
    def _decode_for_update(cls, key: str, row: tuple | None) -> dict[str, Any] | None:
        """Undecodable rows read as absent so the mutation can replace them."""
        try:
            return cls._decode(key, row)
        except StoreError:
            logger.warning("Replacing undecodable store entry %s", key)
            return None
