"""Persistent key/value storage used for client state such as the installation id."""

import asyncio
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STORAGE_SCHEMA = """
CREATE TABLE IF NOT EXISTS storage (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class StorageDictionary(ABC):
    """A loaded view of the storage, keyed by string."""

    @abstractmethod
    async def try_get(self, key: str) -> Any | None:
        """Get the value stored under `key`, or None if absent."""
        pass

    @abstractmethod
    async def add(self, key: str, value: Any) -> None:
        """Store `value` under `key`, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove `key` if present."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass

    def __len__(self) -> int:
        return len(self.keys())


class StorageController(ABC):
    """Loads the storage dictionary."""

    @abstractmethod
    async def load(self) -> StorageDictionary:
        pass


class MemoryStorageDictionary(StorageDictionary):
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def try_get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def add(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class MemoryStorageController(StorageController):
    """Process-local storage, lost on exit."""

    def __init__(self) -> None:
        self._dictionary = MemoryStorageDictionary()

    async def load(self) -> StorageDictionary:
        return self._dictionary


class SQLiteStorageDictionary(StorageDictionary):
    """Storage view backed by a SQLite table; reads are served from memory."""

    def __init__(self, controller: "SQLiteStorageController", data: dict[str, Any]):
        self._controller = controller
        self._data = data

    async def try_get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def add(self, key: str, value: Any) -> None:
        await self._controller._run(self._controller._write, key, value)
        self._data[key] = value

    async def remove(self, key: str) -> None:
        await self._controller._run(self._controller._delete, key)
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class SQLiteStorageController(StorageController):
    """Storage persisted in a SQLite database file.

    Values are stored as JSON text. Blocking database work runs in the
    default executor.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the storage controller.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._dictionary: SQLiteStorageDictionary | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            if self._conn is not None:
                return
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.executescript(STORAGE_SCHEMA)
            self._conn.commit()

        logger.info(f"Storage connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                self._dictionary = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    async def _run(self, func, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def _read_all(self) -> dict[str, Any]:
        conn = self._ensure_connected()
        with self._lock:
            rows = conn.execute("SELECT key, value FROM storage").fetchall()

        data = {}
        for key, value in rows:
            try:
                data[key] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable stored value for {key!r}")
        return data

    def _write(self, key: str, value: Any) -> None:
        conn = self._ensure_connected()
        with self._lock:
            conn.execute(
                "INSERT OR REPLACE INTO storage (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )
            conn.commit()
        logger.debug(f"Stored {key!r}")

    def _delete(self, key: str) -> None:
        conn = self._ensure_connected()
        with self._lock:
            conn.execute("DELETE FROM storage WHERE key = ?", (key,))
            conn.commit()
        logger.debug(f"Removed {key!r}")

    async def load(self) -> StorageDictionary:
        if self._dictionary is None:
            data = await self._run(self._read_all)
            self._dictionary = SQLiteStorageDictionary(self, data)
        return self._dictionary
