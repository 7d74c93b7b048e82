# MIT License
# Copyright (c) 2025 Hashborn

import os
import re
import sqlite3
import threading
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from protocol.config.params import DEFAULT_COMMIT_INTERVAL
from protocol.types.common import StorageIOError

logger = logging.getLogger(__name__)

DB_FILE_NAME = "store.sqlite3"
_PARTITION_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def _table(partition: str) -> str:
    return "cf_" + partition.replace("-", "_")


class KeyValueStore:
    """
    Ordered binary key-value store with named partitions (column families).

    A store lives in its own directory; every partition is a table keyed by
    BLOB, so iteration order is bytewise key order.
    """

    def __init__(self, path: str, partitions: List[str], commit_interval: int = DEFAULT_COMMIT_INTERVAL,
                 page_size: int = 1000, create: bool = True):
        self.path = path
        self.partitions = list(partitions)
        self.commit_interval = commit_interval
        self.page_size = page_size
        self._lock = threading.RLock()
        self._batch_depth = 0
        self._pending = 0

        for p in self.partitions:
            if not _PARTITION_RE.match(p):
                raise StorageIOError(f"Invalid partition name {p!r}")

        db_file = os.path.join(path, DB_FILE_NAME)
        if not create and not os.path.isfile(db_file):
            raise StorageIOError(f"No store at {path} (missing {DB_FILE_NAME})")

        try:
            os.makedirs(path, exist_ok=True)
            self.conn = sqlite3.connect(db_file, check_same_thread=False)
            self.cursor = self.conn.cursor()
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StorageIOError(f"Cannot open store at {path}: {e}") from e

    def _init_db(self):
        with self._lock:
            for p in self.partitions:
                self.cursor.execute(
                    f'CREATE TABLE IF NOT EXISTS {_table(p)} (key BLOB PRIMARY KEY, value BLOB NOT NULL)'
                )
            self.conn.commit()

    def _check(self, partition: str):
        if partition not in self.partitions:
            raise StorageIOError(f"Partition {partition!r} not opened in {self.path} (have {self.partitions})")

    def put(self, partition: str, key: bytes, value: bytes):
        self._check(partition)
        with self._lock:
            try:
                self.cursor.execute(
                    f'INSERT OR REPLACE INTO {_table(partition)} (key, value) VALUES (?, ?)',
                    (bytes(key), bytes(value))
                )
                self._pending += 1
                if self._batch_depth == 0 or self._pending >= self.commit_interval:
                    self._commit()
            except sqlite3.Error as e:
                raise StorageIOError(f"Write to {self.path}/{partition} failed: {e}") from e

    def get(self, partition: str, key: bytes) -> Optional[bytes]:
        self._check(partition)
        with self._lock:
            self.cursor.execute(f'SELECT value FROM {_table(partition)} WHERE key = ?', (bytes(key),))
            row = self.cursor.fetchone()
            return bytes(row[0]) if row else None

    def count(self, partition: str) -> int:
        self._check(partition)
        with self._lock:
            self.cursor.execute(f'SELECT COUNT(*) FROM {_table(partition)}')
            return self.cursor.fetchone()[0]

    def first(self, partition: str) -> Optional[Tuple[bytes, bytes]]:
        """Returns the (key, value) pair with the lowest key, if any."""
        for item in self.iterate(partition):
            return item
        return None

    def iterate(self, partition: str) -> Iterator[Tuple[bytes, bytes]]:
        """
        Yields (key, value) pairs in key order.

        Pages through the table by key, so no cursor or lock is held between
        items and writes to the same store may interleave with iteration.
        """
        self._check(partition)
        table = _table(partition)
        last_key = None
        while True:
            with self._lock:
                cur = self.conn.cursor()
                try:
                    if last_key is None:
                        cur.execute(f'SELECT key, value FROM {table} ORDER BY key LIMIT ?', (self.page_size,))
                    else:
                        cur.execute(
                            f'SELECT key, value FROM {table} WHERE key > ? ORDER BY key LIMIT ?',
                            (last_key, self.page_size)
                        )
                    rows = cur.fetchall()
                except sqlite3.Error as e:
                    raise StorageIOError(f"Read from {self.path}/{partition} failed: {e}") from e
                finally:
                    cur.close()
            for key, value in rows:
                yield bytes(key), bytes(value)
            if len(rows) < self.page_size:
                return
            last_key = rows[-1][0]

    def iterate_keys(self, partition: str) -> Iterator[bytes]:
        for key, _ in self.iterate(partition):
            yield key

    @contextmanager
    def batch(self):
        """Groups writes into commits of `commit_interval` rows; flushes on exit."""
        with self._lock:
            self._batch_depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._pending:
                    self._commit()

    def _commit(self):
        try:
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError(f"Commit to {self.path} failed: {e}") from e
        self._pending = 0

    def close(self):
        with self._lock:
            if self._pending:
                self._commit()
            self.conn.close()
            logger.debug(f"Closed store {self.path}")

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
