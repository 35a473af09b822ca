"""SQLite ledger store: connection lifecycle, schema, and repositories."""

from credential_ledger.db.connection import LedgerStore
from credential_ledger.db.errors import (
    DatabaseError,
    DatabaseReadError,
    DatabaseWriteError,
    LedgerNotOpenError,
)

__all__ = [
    "DatabaseError",
    "DatabaseReadError",
    "DatabaseWriteError",
    "LedgerNotOpenError",
    "LedgerStore",
]
