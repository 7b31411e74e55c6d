"""
Manages the SQLite database that backs every persistent record: cache entries,
the history ledger and job records.
"""

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ytaudio.exceptions import StoreUnavailableError

log = logging.getLogger(__name__)


class KeyValueStore:
    """
    A thread-safe SQLite key-value store with per-key expiry and JSON list
    values, accessed through a bounded pool of worker threads.

    Expired keys behave as absent on every read and are physically removed
    lazily or by `purge_expired`.
    """

    def __init__(
        self,
        db_path: Path,
        pool_size: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path)
        self._pool_size = pool_size
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._clock = clock
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(
                self.db_path, timeout=30, check_same_thread=False, isolation_level=None
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to store database: {e}")
            raise StoreUnavailableError(f"Cannot open store at '{self.db_path}': {e}") from e

    def _initialize_db(self) -> None:
        """Creates the database file and table if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY NOT NULL,
                        value TEXT NOT NULL,
                        expires_at REAL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_expires ON kv(expires_at);")
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailableError(
                f"Failed to initialize store database at '{self.db_path}': {e}"
            ) from e

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(self._guarded, func, *args)

    def _guarded(self, func, *args):
        conn = self._get_connection()
        try:
            return func(conn, *args)
        except sqlite3.Error as e:
            log.error(f"Store operation '{func.__name__}' failed: {e}")
            raise StoreUnavailableError(f"Store operation failed: {e}") from e
        finally:
            conn.close()

    def _expiry(self, ttl_seconds: float | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _read_live(self, conn: sqlite3.Connection, key: str) -> str | None:
        """Reads a value, deleting it instead if it has expired."""
        row = conn.execute(
            "SELECT value, expires_at FROM kv WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at is not None and expires_at <= self._clock():
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            return None
        return value

    # Scalar values

    def _get_sync(self, conn: sqlite3.Connection, key: str) -> str | None:
        return self._read_live(conn, key)

    async def get(self, key: str) -> str | None:
        """Returns the raw value for a key, or None if absent or expired."""
        return await self._run_in_executor(self._get_sync, key)

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning(f"Discarding corrupt value for key '{key}': {e}")
            await self.delete(key)
            return None

    def _set_sync(
        self, conn: sqlite3.Connection, key: str, value: str, ttl: float | None
    ) -> None:
        conn.execute(
            "INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "expires_at = excluded.expires_at",
            (key, value, self._expiry(ttl)),
        )

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """Stores a value, replacing any previous one and re-arming its expiry."""
        await self._run_in_executor(self._set_sync, key, value, ttl_seconds)

    async def set_json(
        self, key: str, value: Any, ttl_seconds: float | None = None
    ) -> None:
        await self.set(key, json.dumps(value), ttl_seconds)

    def _expire_sync(self, conn: sqlite3.Connection, key: str, ttl: float) -> bool:
        if self._read_live(conn, key) is None:
            return False
        conn.execute(
            "UPDATE kv SET expires_at = ? WHERE key = ?", (self._expiry(ttl), key)
        )
        return True

    async def expire(self, key: str, ttl_seconds: float) -> bool:
        """Re-arms the expiry of an existing key. Returns False if it is absent."""
        return await self._run_in_executor(self._expire_sync, key, ttl_seconds)

    def _delete_sync(self, conn: sqlite3.Connection, keys: tuple[str, ...]) -> int:
        if not keys:
            return 0
        placeholders = ",".join("?" * len(keys))
        cursor = conn.execute(
            f"DELETE FROM kv WHERE key IN ({placeholders})",  # noqa: S608
            keys,
        )
        return cursor.rowcount

    async def delete(self, *keys: str) -> int:
        """Deletes keys; missing keys are ignored. Returns the number removed."""
        return await self._run_in_executor(self._delete_sync, tuple(keys))

    def _keys_sync(self, conn: sqlite3.Connection, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = conn.execute(
            "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' "
            "AND (expires_at IS NULL OR expires_at > ?) ORDER BY key",
            (f"{escaped}%", self._clock()),
        ).fetchall()
        return [row[0] for row in rows]

    async def keys(self, prefix: str = "") -> list[str]:
        """Enumerates live keys starting with `prefix`."""
        return await self._run_in_executor(self._keys_sync, prefix)

    # List values (stored as JSON arrays, index 0 is the head)

    def _load_list(self, conn: sqlite3.Connection, key: str) -> list[Any]:
        raw = self._read_live(conn, key)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            log.warning(f"List at key '{key}' is corrupt; treating it as empty.")
            return []
        return items if isinstance(items, list) else []

    def _store_list(self, conn: sqlite3.Connection, key: str, items: list[Any]) -> None:
        if items:
            self._set_sync(conn, key, json.dumps(items), None)
        else:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def _list_push_sync(
        self,
        conn: sqlite3.Connection,
        key: str,
        item: Any,
        unless: Callable[[Any], bool] | None,
    ) -> bool:
        conn.execute("BEGIN IMMEDIATE")
        try:
            items = self._load_list(conn, key)
            if unless is not None and any(unless(existing) for existing in items):
                conn.execute("COMMIT")
                return False
            items.insert(0, item)
            self._store_list(conn, key, items)
            conn.execute("COMMIT")
            return True
        except Exception:
            conn.execute("ROLLBACK")
            raise

    async def list_push(
        self, key: str, item: Any, unless: Callable[[Any], bool] | None = None
    ) -> bool:
        """
        Inserts `item` at the head of the list in one transaction.
        When `unless` matches any existing item, nothing is written and False is
        returned.
        """
        return await self._run_in_executor(self._list_push_sync, key, item, unless)

    def _list_range_sync(
        self, conn: sqlite3.Connection, key: str, start: int, stop: int
    ) -> list[Any]:
        items = self._load_list(conn, key)
        end = None if stop == -1 else stop + 1
        return items[start:end]

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> list[Any]:
        """Returns list items from `start` to `stop` inclusive (-1 means the end)."""
        return await self._run_in_executor(self._list_range_sync, key, start, stop)

    def _list_remove_sync(
        self, conn: sqlite3.Connection, key: str, predicate: Callable[[Any], bool]
    ) -> int:
        conn.execute("BEGIN IMMEDIATE")
        try:
            items = self._load_list(conn, key)
            kept = [item for item in items if not predicate(item)]
            removed = len(items) - len(kept)
            if removed:
                self._store_list(conn, key, kept)
            conn.execute("COMMIT")
            return removed
        except Exception:
            conn.execute("ROLLBACK")
            raise

    async def list_remove(self, key: str, predicate: Callable[[Any], bool]) -> int:
        """Removes every list item matching `predicate` in one transaction."""
        return await self._run_in_executor(self._list_remove_sync, key, predicate)

    # Maintenance

    def _purge_expired_sync(self, conn: sqlite3.Connection) -> int:
        cursor = conn.execute(
            "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        return cursor.rowcount

    async def purge_expired(self) -> int:
        """Physically removes all expired keys."""
        removed = await self._run_in_executor(self._purge_expired_sync)
        if removed:
            log.debug(f"Store purge: removed {removed} expired keys.")
        return removed

    def _vacuum_sync(self, conn: sqlite3.Connection) -> None:
        conn.execute("VACUUM;")
        conn.execute("ANALYZE;")

    async def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        await self._run_in_executor(self._vacuum_sync)
        log.info("Store database optimized successfully.")
