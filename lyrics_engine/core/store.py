"""
SQLite-backed persistent store for lyrics-engine.

The store holds three independent keyed collections, one table each:

    lyrics_cache:       {key, lyrics, version, timestamp, duration}
    translation_cache:  {key, translated_lyrics, original_version}
    local_lyrics:       {song_id, song_info, lyrics, timestamp}

Each row keeps the full record as JSON in a `record` column next to its
primary key, so a collection can store any dict shape without schema
changes. There are no cross-collection transactions.

All public collection methods are coroutines. The blocking SQLite call
runs in a worker thread through asyncio.to_thread(); a single shared
connection is guarded by a threading.Lock.

Failure mode: every sqlite3 error (and undecodable stored JSON) is raised
as StoreError. Nothing is swallowed and there is no in-memory fallback.

Usage:
    store = PersistentStore(config.storage.database)

    await store.lyrics_cache.set({"key": key, "lyrics": {...}, "version": v, ...})
    record = await store.lyrics_cache.get(key)
    size = await store.translation_cache.estimate_size()

    store.close()
"""

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generator, TypeVar

from lyrics_engine.core.exceptions import StoreError
from lyrics_engine.core.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

DATABASE_VERSION = 1

LYRICS_CACHE_TABLE = "lyrics_cache"
TRANSLATION_CACHE_TABLE = "translation_cache"
LOCAL_LYRICS_TABLE = "local_lyrics"

# table name -> primary key field of the stored record
COLLECTIONS = {
    LYRICS_CACHE_TABLE: "key",
    TRANSLATION_CACHE_TABLE: "key",
    LOCAL_LYRICS_TABLE: "song_id",
}


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS lyrics_cache (
    pk TEXT PRIMARY KEY,
    record TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS translation_cache (
    pk TEXT PRIMARY KEY,
    record TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS local_lyrics (
    pk TEXT PRIMARY KEY,
    record TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class SizeEstimate:
    """
    Approximate collection size.

    Attributes:
        size_bytes: Sum of the UTF-8 length of every record's JSON.
        count: Number of records.
    """
    size_bytes: int
    count: int

    def __add__(self, other: "SizeEstimate") -> "SizeEstimate":
        return SizeEstimate(self.size_bytes + other.size_bytes, self.count + other.count)


class Database:
    """
    Thread-safe SQLite connection holder.

    Uses a single persistent connection with thread locking for safety.
    Callers run work through run(), which acquires the lock and hands
    the connection to a function.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise StoreError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise StoreError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run func with the connection while holding the lock.

        Raises:
            StoreError: If func raises sqlite3.Error.
        """
        with self._lock:
            with self._get_connection() as conn:
                try:
                    result = func(conn)
                    conn.commit()
                    return result
                except sqlite3.Error as e:
                    conn.rollback()
                    raise StoreError(
                        f"Database operation failed: {e}",
                        details={"path": str(self.db_path), "original_error": str(e)}
                    ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class Collection:
    """
    One keyed collection (a table of JSON records).

    Attributes:
        table: Table name.
        key_field: Record field used as primary key ('key' or 'song_id').
    """

    def __init__(self, database: Database, table: str, key_field: str) -> None:
        self._database = database
        self.table = table
        self.key_field = key_field

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._database.run, func)

    def _decode(self, raw: str) -> dict[str, Any]:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(
                f"Corrupted record in {self.table}: {e}",
                details={"table": self.table}
            ) from e

    # =========================================================================
    # Record Operations
    # =========================================================================

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the record stored under key, or None."""
        def query(conn: sqlite3.Connection) -> str | None:
            row = conn.execute(
                f"SELECT record FROM {self.table} WHERE pk = ?", (key,)
            ).fetchone()
            return row["record"] if row else None

        raw = await self._run(query)
        return self._decode(raw) if raw is not None else None

    async def set(self, record: dict[str, Any]) -> None:
        """
        Insert or replace a record, keyed by its primary key field.

        Raises:
            StoreError: If the key field is missing or the record is not
                        JSON-serializable.
        """
        key = record.get(self.key_field)
        if not key:
            raise StoreError(
                f"Record for {self.table} is missing '{self.key_field}'",
                details={"table": self.table}
            )
        try:
            payload = json.dumps(record, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(
                f"Record for {self.table} is not serializable: {e}",
                details={"table": self.table, "key": key}
            ) from e

        def upsert(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"""
                INSERT INTO {self.table} (pk, record) VALUES (?, ?)
                ON CONFLICT(pk) DO UPDATE SET record = excluded.record
                """,
                (str(key), payload),
            )

        await self._run(upsert)
        logger.debug(f"{self.table}: stored {key}")

    async def delete(self, key: str) -> None:
        """Delete the record stored under key (no-op if absent)."""
        def remove(conn: sqlite3.Connection) -> None:
            conn.execute(f"DELETE FROM {self.table} WHERE pk = ?", (key,))

        await self._run(remove)
        logger.debug(f"{self.table}: deleted {key}")

    async def get_all(self) -> list[dict[str, Any]]:
        """Return every record, in insertion order."""
        def query(conn: sqlite3.Connection) -> list[str]:
            rows = conn.execute(f"SELECT record FROM {self.table} ORDER BY rowid").fetchall()
            return [row["record"] for row in rows]

        return [self._decode(raw) for raw in await self._run(query)]

    async def clear(self) -> None:
        """Delete every record of this collection."""
        def remove_all(conn: sqlite3.Connection) -> None:
            conn.execute(f"DELETE FROM {self.table}")

        await self._run(remove_all)
        logger.debug(f"{self.table}: cleared")

    async def estimate_size(self) -> SizeEstimate:
        """Sum of UTF-8 record sizes and the record count."""
        def query(conn: sqlite3.Connection) -> list[str]:
            return [row["record"] for row in conn.execute(f"SELECT record FROM {self.table}")]

        records = await self._run(query)
        size = sum(len(raw.encode("utf-8")) for raw in records)
        return SizeEstimate(size_bytes=size, count=len(records))


class PersistentStore:
    """
    The three collections over one SQLite file.

    Attributes:
        lyrics_cache: Provider lyrics, keyed by cache key.
        translation_cache: Derived documents, keyed by composite key.
        local_lyrics: User-uploaded lyrics, keyed by song_id.
    """

    def __init__(self, db_path: Path) -> None:
        """
        Open (and create if needed) the store.

        Args:
            db_path: SQLite file path. Its parent directory is created.

        Raises:
            StoreError: If the database cannot be opened or initialized.
        """
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(
                f"Cannot create database directory: {db_path.parent}",
                details={"path": str(db_path.parent), "original_error": str(e)}
            ) from e

        self._database = Database(db_path)
        self.lyrics_cache = Collection(self._database, LYRICS_CACHE_TABLE, COLLECTIONS[LYRICS_CACHE_TABLE])
        self.translation_cache = Collection(
            self._database, TRANSLATION_CACHE_TABLE, COLLECTIONS[TRANSLATION_CACHE_TABLE]
        )
        self.local_lyrics = Collection(self._database, LOCAL_LYRICS_TABLE, COLLECTIONS[LOCAL_LYRICS_TABLE])

    @property
    def path(self) -> Path:
        return self._database.db_path

    def close(self) -> None:
        self._database.close()
