"""SQLite-backed KeyValueStorage (persistent, file-based)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite

DEFAULT_DB_PATH = "wallet_bridge.db"
STORAGE_TABLE = "kv_store"


class SQLiteStorage:
    """Durable KeyValueStorage storing JSON values in one SQLite table.

    Each call opens its own connection, so an instance can be shared
    freely and survives the event loop that created it.

    Example:
        >>> storage = SQLiteStorage("/tmp/bridge.db")
        >>> # await storage.set("session", {"address": "0xabc"})
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        self._db_path = str(db_path)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def _ensure_table(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {STORAGE_TABLE} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )

    async def get(self, key: str) -> Any | None:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(
                f"SELECT value FROM {STORAGE_TABLE} WHERE key = ?",  # nosec B608
                (key,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            await conn.execute(
                f"INSERT INTO {STORAGE_TABLE} (key, value) VALUES (?, ?) "  # nosec B608
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, payload),
            )
            await conn.commit()

    async def remove(self, key: str) -> bool:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(
                f"DELETE FROM {STORAGE_TABLE} WHERE key = ?",  # nosec B608
                (key,),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def clear(self) -> None:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            await conn.execute(f"DELETE FROM {STORAGE_TABLE}")  # nosec B608
            await conn.commit()

    async def keys(self) -> list[str]:
        async with aiosqlite.connect(self._db_path) as conn:
            await self._ensure_table(conn)
            cursor = await conn.execute(
                f"SELECT key FROM {STORAGE_TABLE} ORDER BY key"  # nosec B608
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]
