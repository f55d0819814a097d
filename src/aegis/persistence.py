"""Async SQLite repository for the operator's saved settings.

Uses aiosqlite for non-blocking database operations with WAL mode. Settings
are stored as one JSON record keyed by a versioned storage identifier, so a
schema change only needs a new suffix and stale shapes are never loaded.
"""

import json
import os
import time
from typing import Any, Self

import aiosqlite

from aegis.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

# Bump the suffix on any incompatible change to the persisted settings shape.
SETTINGS_STORAGE_KEY = "aegis_ai_settings_v10"

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS settings (
    storage_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    saved_at INTEGER NOT NULL
);
"""


class SettingsRepository:
    """Async SQLite store for the serialized settings record.

    Usage:
        async with SettingsRepository("data/aegis.db") as repo:
            await repo.save({"trading": {...}})
            payload = await repo.load()
    """

    def __init__(
        self,
        db_path: str = "data/aegis.db",
        storage_key: str = SETTINGS_STORAGE_KEY,
    ) -> None:
        self._db_path = db_path
        self._storage_key = storage_key
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @property
    def storage_key(self) -> str:
        return self._storage_key

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await self._connection.commit()
        logger.info("settings_db_connected", path=self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("settings_db_closed")

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def save(self, payload: dict[str, Any]) -> None:
        """Replace the stored settings record."""
        await self.db.execute(
            "INSERT OR REPLACE INTO settings (storage_key, payload, saved_at) "
            "VALUES (?, ?, ?)",
            (self._storage_key, json.dumps(payload), int(time.time() * 1000)),
        )
        await self.db.commit()
        logger.info("settings_saved", storage_key=self._storage_key)

    async def load(self) -> dict[str, Any] | None:
        """Return the stored settings record, or None if absent or unreadable."""
        async with self.db.execute(
            "SELECT payload FROM settings WHERE storage_key = ?",
            (self._storage_key,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("settings_record_corrupt", storage_key=self._storage_key)
            return None
        if not isinstance(payload, dict):
            logger.warning("settings_record_not_object", storage_key=self._storage_key)
            return None
        return payload
