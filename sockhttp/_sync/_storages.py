from __future__ import annotations

import abc
import logging
import sqlite3
import time
import typing as tp
from collections import OrderedDict
from dataclasses import replace
from threading import Lock

from sockhttp._core._packing import pack, unpack
from sockhttp._core.models import Entry, Response

logger = logging.getLogger("sockhttp.storages")

__all__ = ("BaseStorage", "NullStorage", "InMemoryStorage", "SQLiteStorage")


class BaseStorage(abc.ABC):
    """
    The cache store collaborator.

    A store keeps one :class:`Entry` per fingerprint. It decides nothing
    about freshness on lookup; the gateway compares an entry's age against
    the expiration it resolves for the request.
    """

    @abc.abstractmethod
    def query(self, fingerprint: str) -> tp.Optional[Entry]:
        raise NotImplementedError()

    @abc.abstractmethod
    def commit(self, fingerprint: str, response: Response, ttl: float) -> Entry:
        raise NotImplementedError()

    @abc.abstractmethod
    def prune(self) -> int:
        """Drop expired entries and return how many were removed."""
        raise NotImplementedError()

    @abc.abstractmethod
    def remove(self, fingerprint: str) -> None:
        raise NotImplementedError()

    @abc.abstractmethod
    def clear(self) -> None:
        raise NotImplementedError()

    def close(self) -> None:
        pass


class NullStorage(BaseStorage):
    """A store that keeps nothing, so every lookup misses."""

    def query(self, fingerprint: str) -> tp.Optional[Entry]:
        return None

    def commit(self, fingerprint: str, response: Response, ttl: float) -> Entry:
        return Entry(fingerprint=fingerprint, response=response, expiration=ttl)

    def prune(self) -> int:
        return 0

    def remove(self, fingerprint: str) -> None:
        return None

    def clear(self) -> None:
        return None


class InMemoryStorage(BaseStorage):
    """
    A simple in-memory storage.

    :param capacity: The maximum number of responses that can be cached, defaults to 128
    :type capacity: int, optional
    """

    def __init__(self, capacity: int = 128) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: tp.OrderedDict[str, Entry] = OrderedDict()
        self._lock = Lock()

    def query(self, fingerprint: str) -> tp.Optional[Entry]:
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is not None:
                self._entries.move_to_end(fingerprint)
            return entry

    def commit(self, fingerprint: str, response: Response, ttl: float) -> Entry:
        entry = Entry(fingerprint=fingerprint, response=replace(response, request=None), expiration=ttl)
        with self._lock:
            self._entries[fingerprint] = entry
            self._entries.move_to_end(fingerprint)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted least recently used entry {evicted}")
        return entry

    def prune(self) -> int:
        now = time.time()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired entries")
        return len(expired)

    def remove(self, fingerprint: str) -> None:
        with self._lock:
            self._entries.pop(fingerprint, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteStorage(BaseStorage):
    """
    A simple sqlite3 storage.

    Entries are packed with msgpack into a single ``entries`` table.

    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[sqlite3.Connection], optional
    :param database_path: Database file opened when no connection is given, defaults to "sockhttp_cache.db"
    :type database_path: str, optional
    """

    def __init__(
        self,
        *,
        connection: tp.Optional[sqlite3.Connection] = None,
        database_path: str = "sockhttp_cache.db",
    ) -> None:
        self.connection = connection
        self.database_path = database_path
        self._lock = Lock()
        self._initialized = False

    def _ensure_connection(self) -> sqlite3.Connection:
        """Ensure connection is established and database is initialized."""
        if self.connection is None:
            self.connection = sqlite3.connect(self.database_path, check_same_thread=False)
        if not self._initialized:
            self._initialize_database()
            self._initialized = True
        return self.connection

    def _initialize_database(self) -> None:
        assert self.connection is not None
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                fingerprint TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                created_at REAL NOT NULL,
                expiration REAL NOT NULL
            )
            """
        )
        self.connection.execute("CREATE INDEX IF NOT EXISTS idx_entries_created_at ON entries(created_at)")
        self.connection.commit()

    def query(self, fingerprint: str) -> tp.Optional[Entry]:
        connection = self._ensure_connection()
        with self._lock:
            row = connection.execute("SELECT data FROM entries WHERE fingerprint = ?", (fingerprint,)).fetchone()
        if row is None:
            return None
        return unpack(row[0])

    def commit(self, fingerprint: str, response: Response, ttl: float) -> Entry:
        connection = self._ensure_connection()
        entry = Entry(fingerprint=fingerprint, response=replace(response, request=None), expiration=ttl)
        with self._lock:
            connection.execute(
                "INSERT OR REPLACE INTO entries (fingerprint, data, created_at, expiration) VALUES (?, ?, ?, ?)",
                (fingerprint, pack(entry), entry.created_at, entry.expiration),
            )
            connection.commit()
        return entry

    def prune(self) -> int:
        connection = self._ensure_connection()
        with self._lock:
            cursor = connection.execute("DELETE FROM entries WHERE created_at + expiration <= ?", (time.time(),))
            connection.commit()
        if cursor.rowcount:
            logger.debug(f"Pruned {cursor.rowcount} expired entries")
        return cursor.rowcount

    def remove(self, fingerprint: str) -> None:
        connection = self._ensure_connection()
        with self._lock:
            connection.execute("DELETE FROM entries WHERE fingerprint = ?", (fingerprint,))
            connection.commit()

    def clear(self) -> None:
        connection = self._ensure_connection()
        with self._lock:
            connection.execute("DELETE FROM entries")
            connection.commit()

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            self._initialized = False
