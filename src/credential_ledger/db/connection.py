"""SQLite connection primitives for the ledger store.

This module owns connection creation, low-level SQLite runtime pragmas, and
the store lifecycle so repository and service code can stay focused on
queries and transaction intent.

Concurrency model:
    - The database runs in WAL journal mode, so readers see a consistent
      snapshot and never block on the writer.
    - Write scopes are serialized in-process by a lock and across processes
      by ``BEGIN IMMEDIATE`` plus ``busy_timeout``.
    - Every scope opens its own connection and closes it on exit; connections
      are never shared between threads.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from credential_ledger.db.errors import LedgerNotOpenError

logger = logging.getLogger(__name__)


def configure_connection(
    connection: sqlite3.Connection, *, busy_timeout_ms: int = 5000
) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the ledger.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default (batch items reference batches).
        - ``busy_timeout`` absorbs short lock waits from other processes.
    """
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    return connection


class LedgerStore:
    """Explicitly owned handle to the ledger database file.

    Services receive the store at construction time; nothing reaches it
    through module globals.  The process entry point owns the lifecycle:

        store = LedgerStore(path)
        store.open()
        ...
        store.close()

    Args:
        path: SQLite database file. Parent directories are created on open.
        busy_timeout_ms: Lock wait timeout applied to every connection.
    """

    def __init__(self, path: Path | str, *, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._write_lock = threading.Lock()
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> LedgerStore:
        """Create the data directory, enable WAL, and ensure the schema exists."""
        from credential_ledger.db.schema import create_schema

        if self._is_open:
            return self

        self.path.parent.mkdir(parents=True, exist_ok=True)
        connection = self._connect()
        try:
            connection.execute("PRAGMA journal_mode = WAL")
            create_schema(connection)
        finally:
            connection.close()

        self._is_open = True
        logger.info("Ledger store opened at %s", self.path)
        return self

    def close(self) -> None:
        """Mark the store closed; in-flight scopes finish on their own connection."""
        if self._is_open:
            self._is_open = False
            logger.info("Ledger store closed at %s", self.path)

    def _connect(self) -> sqlite3.Connection:
        """Create and configure a new autocommit-mode connection.

        ``isolation_level=None`` leaves transaction boundaries entirely to the
        explicit ``BEGIN`` statements issued by :meth:`connection_scope`.
        """
        connection = sqlite3.connect(str(self.path), isolation_level=None)
        return configure_connection(connection, busy_timeout_ms=self.busy_timeout_ms)

    def get_connection(self) -> sqlite3.Connection:
        """Create a new configured connection for an open store."""
        if not self._is_open:
            raise LedgerNotOpenError(f"Ledger store at {self.path} is not open. Call open() first.")
        return self._connect()

    @contextmanager
    def connection_scope(self, *, write: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a configured connection inside one transaction.

        Args:
            write: When True, take the single-writer lock, start the transaction
                with ``BEGIN IMMEDIATE``, commit on success and rollback on
                exceptions.  Read scopes use a deferred transaction so multi-
                statement reads observe a single snapshot.

        Yields:
            Configured SQLite connection ready for cursor operations.

        Behavior:
            - Always closes the connection in ``finally``.
            - For write scopes, attempts rollback before re-raising failures.
        """
        if write:
            with self._write_lock:
                yield from self._scope(write=True)
        else:
            yield from self._scope(write=False)

    def _scope(self, *, write: bool) -> Iterator[sqlite3.Connection]:
        connection = self.get_connection()
        try:
            connection.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield connection
            if write:
                connection.commit()
        except Exception:
            if write:
                try:
                    connection.rollback()
                except sqlite3.Error:
                    # Preserve the original exception while best-effort rolling back.
                    pass
            raise
        finally:
            connection.close()
