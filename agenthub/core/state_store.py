"""Key/value state stores holding registry records and health snapshots."""
from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

import aiosqlite

Clock = Callable[[], float]


def build_key(key: str, namespace: str = "") -> str:
    return f"{namespace}:{key}" if namespace else key


def _strip(full_key: str, namespace: str) -> Optional[str]:
    if not namespace:
        return full_key
    prefix = f"{namespace}:"
    if full_key.startswith(prefix):
        return full_key[len(prefix):]
    return None


class StateStore(Protocol):
    """Namespaced key/value store with optional per-entry time-to-live."""

    async def set(
        self, key: str, value: Any, *, namespace: str = "", ttl: Optional[float] = None
    ) -> None:
        ...

    async def get(self, key: str, *, namespace: str = "", default: Any = None) -> Any:
        ...

    async def delete(self, key: str, *, namespace: str = "") -> bool:
        ...

    async def keys(self, namespace: str = "") -> List[str]:
        ...

    async def clear(self, namespace: str = "") -> int:
        ...


class InMemoryStateStore:
    """Process-local state store; expired entries are dropped lazily."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _alive(self, full_key: str) -> bool:
        entry = self._store.get(full_key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._store[full_key]
            return False
        return True

    async def set(
        self, key: str, value: Any, *, namespace: str = "", ttl: Optional[float] = None
    ) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._store[build_key(key, namespace)] = (value, expires_at)

    async def get(self, key: str, *, namespace: str = "", default: Any = None) -> Any:
        full_key = build_key(key, namespace)
        if not self._alive(full_key):
            return default
        return self._store[full_key][0]

    async def delete(self, key: str, *, namespace: str = "") -> bool:
        full_key = build_key(key, namespace)
        existed = self._alive(full_key)
        self._store.pop(full_key, None)
        return existed

    async def keys(self, namespace: str = "") -> List[str]:
        result = []
        for full_key in list(self._store):
            stripped = _strip(full_key, namespace)
            if stripped is not None and self._alive(full_key):
                result.append(stripped)
        return result

    async def clear(self, namespace: str = "") -> int:
        doomed = [k for k in self._store if _strip(k, namespace) is not None]
        for full_key in doomed:
            del self._store[full_key]
        return len(doomed)


class SqliteStateStore:
    """SQLite-backed state store; values are stored as JSON."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            expires_at REAL
        )
    """

    def __init__(self, db_path: Union[str, Path], clock: Clock = time.time) -> None:
        self._db_path = db_path
        self._clock = clock
        self._conn: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        """Open the database and create the table."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute(self.SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("State store not initialized")
        return self._conn

    async def _purge_expired(self) -> None:
        conn = self._connection()
        await conn.execute(
            "DELETE FROM state WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )

    async def set(
        self, key: str, value: Any, *, namespace: str = "", ttl: Optional[float] = None
    ) -> None:
        conn = self._connection()
        expires_at = self._clock() + ttl if ttl else None
        await conn.execute(
            "INSERT OR REPLACE INTO state (key, value, expires_at) VALUES (?, ?, ?)",
            (build_key(key, namespace), json.dumps(value), expires_at),
        )
        await conn.commit()

    async def get(self, key: str, *, namespace: str = "", default: Any = None) -> Any:
        conn = self._connection()
        await self._purge_expired()
        cursor = await conn.execute(
            "SELECT value FROM state WHERE key = ?", (build_key(key, namespace),)
        )
        row = await cursor.fetchone()
        if not row:
            return default
        return json.loads(row[0])

    async def delete(self, key: str, *, namespace: str = "") -> bool:
        conn = self._connection()
        await self._purge_expired()
        cursor = await conn.execute(
            "DELETE FROM state WHERE key = ?", (build_key(key, namespace),)
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def keys(self, namespace: str = "") -> List[str]:
        conn = self._connection()
        await self._purge_expired()
        if namespace:
            cursor = await conn.execute(
                "SELECT key FROM state WHERE key LIKE ? ORDER BY rowid",
                (f"{namespace}:%",),
            )
        else:
            cursor = await conn.execute("SELECT key FROM state ORDER BY rowid")
        rows = await cursor.fetchall()
        return [k for k in (_strip(row[0], namespace) for row in rows) if k is not None]

    async def clear(self, namespace: str = "") -> int:
        conn = self._connection()
        if namespace:
            cursor = await conn.execute(
                "DELETE FROM state WHERE key LIKE ?", (f"{namespace}:%",)
            )
        else:
            cursor = await conn.execute("DELETE FROM state")
        await conn.commit()
        return cursor.rowcount
