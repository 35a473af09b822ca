"""Typed database/domain exceptions for the ledger store.

This module defines a small, explicit exception hierarchy used by the store and
the services to signal infrastructure failures (for example SQLite connection
or query errors) without collapsing all failures into boolean return values.

Design intent:
    - Domain outcomes like "batch not found" or "already revoked" are
      represented by ``None``/``False`` or structured results where the
      contracts already use those values.
    - Infrastructure failures raise typed exceptions inside the services; the
      public service methods convert them into fail-soft results and log them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NoReturn


@dataclass(slots=True)
class DatabaseOperationContext:
    """Structured operation metadata carried by store exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"revocations.record"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class DatabaseError(RuntimeError):
    """Base exception for ledger store failures."""


class LedgerNotOpenError(DatabaseError):
    """Raised when the store is used before ``open()`` or after ``close()``."""


class DatabaseOperationError(DatabaseError):
    """Base exception for store operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: DatabaseOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class DatabaseReadError(DatabaseOperationError):
    """Store read/query failure."""


class DatabaseWriteError(DatabaseOperationError):
    """Store mutation/transaction failure."""


def raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed read error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseReadError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed write error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseWriteError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc
