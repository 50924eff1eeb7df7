"""
SQLite store for verified piece data, keyed by the piece's hex SHA-1.

Readers fill it as they serve pieces; deleting a torrent with its data purges
the torrent's pieces inside a single transaction.
"""
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

from torrentgate.errors import PieceDeleteError, PieceNotFound

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA auto_vacuum = INCREMENTAL",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = 0",
    "PRAGMA locking_mode = NORMAL",
    "PRAGMA cache_size = -32768",
    f"PRAGMA mmap_size = {64 << 20}",
    f"PRAGMA journal_size_limit = {256 << 20}",
)


class CacheTransaction:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def delete(self, key: str) -> None:
        cursor = self._conn.execute("DELETE FROM blob WHERE name = ?", (key,))
        if cursor.rowcount == 0:
            raise PieceNotFound(key)


class PieceCache:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def open(self) -> "PieceCache":
        if self._conn is not None:
            return self
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), check_same_thread=False)
        for pragma in _PRAGMAS:
            conn.execute(pragma)
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS blob (
                name TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                last_used TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.commit()
        self._conn = conn
        logger.info(f"Piece cache opened at {self.path}")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        return self._conn

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            conn = self._connection()
            row = conn.execute("SELECT data FROM blob WHERE name = ?", (key,)).fetchone()
            if row is None:
                return None
            conn.execute("UPDATE blob SET last_used = CURRENT_TIMESTAMP WHERE name = ?", (key,))
            conn.commit()
            return bytes(row[0])

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            conn = self._connection()
            conn.execute("INSERT OR REPLACE INTO blob (name, data) VALUES (?, ?)", (key, sqlite3.Binary(data)))
            conn.commit()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            row = self._connection().execute("SELECT 1 FROM blob WHERE name = ?", (key,)).fetchone()
            return row is not None

    @contextmanager
    def transaction(self):
        """Commits when the block exits cleanly, rolls everything back otherwise."""
        with self._lock:
            conn = self._connection()
            try:
                yield CacheTransaction(conn)
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    def purge(self, keys: Iterable[str]) -> int:
        """
        Deletes every key in one transaction. Missing keys are skipped; any other
        failure rolls the whole purge back and raises PieceDeleteError.
        """
        removed = 0
        try:
            with self.transaction() as tx:
                for key in keys:
                    try:
                        tx.delete(key)
                    except PieceNotFound:
                        continue
                    removed += 1
        except sqlite3.Error as e:
            raise PieceDeleteError(f"error deleting piece: {e}") from e
        return removed

    def delete_database(self) -> None:
        self.close()
        for suffix in ("", "-wal", "-shm"):
            try:
                os.remove(f"{self.path}{suffix}")
            except FileNotFoundError:
                continue
        logger.info(f"Deleted piece cache database {self.path}")
