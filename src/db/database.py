# key/value persistence standing in for the browser's local storage
from __future__ import annotations

import asyncio
import json
import os.path
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

_MISSING = object()

INIT_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class LocalStore:
    """
    JSON values keyed by string, backed by a single sqlite table.

    One instance is created at app start and handed to every service that
    persists state. Concurrent processes sharing the same file race with
    last-writer-wins semantics, same as browser tabs sharing local storage.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = str(db_path)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def _init_db(self, conn: aiosqlite.Connection) -> None:
        _logger.info(f"Initializing local store at {self.db_path}...")
        await conn.executescript(INIT_SQL)
        await conn.commit()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Async context manager yielding a connection, creating the table on first use."""
        directory = os.path.dirname(self.db_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        conn = await aiosqlite.connect(self.db_path)
        try:
            if not self._initialized:
                async with self._init_lock:
                    if not self._initialized:
                        await self._init_db(conn)
                        self._initialized = True
            yield conn
        finally:
            await conn.close()

    async def get(self, key: str, default: Any = None) -> Any:
        async with self.connect() as conn:
            cur = await conn.execute("SELECT value FROM kv WHERE key = ?;", (key,))
            row = await cur.fetchone()
            await cur.close()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            _logger.warning(f"Discarding unreadable value stored under '{key}'")
            return default

    async def has(self, key: str) -> bool:
        return (await self.get(key, _MISSING)) is not _MISSING

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at;
                """,
                (key, payload, datetime.now().isoformat()),
            )
            await conn.commit()

    async def remove(self, key: str) -> None:
        async with self.connect() as conn:
            await conn.execute("DELETE FROM kv WHERE key = ?;", (key,))
            await conn.commit()

    async def keys(self, prefix: str = "") -> List[str]:
        async with self.connect() as conn:
            cur = await conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key;",
                (len(prefix), prefix),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [r[0] for r in rows]

    async def remove_prefix(self, prefix: str) -> int:
        if not prefix:
            raise ValueError("prefix must not be empty, use clear() instead")
        async with self.connect() as conn:
            cur = await conn.execute(
                "DELETE FROM kv WHERE substr(key, 1, ?) = ?;", (len(prefix), prefix)
            )
            await conn.commit()
            removed = cur.rowcount
            await cur.close()
        return removed

    async def clear(self) -> None:
        async with self.connect() as conn:
            await conn.execute("DELETE FROM kv;")
            await conn.commit()
