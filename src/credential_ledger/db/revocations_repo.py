"""Revocation repository operations for the SQLite ledger store.

Rows in ``revocations`` are append-only facts: inserted once per credential,
never updated or deleted.  Functions here take a cursor so callers can compose
them with other writes inside a single transaction.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable

from credential_ledger.db.types import EpochRevocationCount, RevocationRecord


def insert_revocation(
    cursor: sqlite3.Cursor,
    *,
    credential_id: str,
    epoch_id: int,
    issuer_id: str,
    prime_value: str,
) -> bool:
    """Insert a revocation fact; return False when one already existed.

    A duplicate credential id is not an error: the unique key absorbs the
    conflict and the original row is left untouched.
    """
    cursor.execute(
        """
        INSERT INTO revocations (credential_id, epoch_id, issuer_id, prime_value)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(credential_id) DO NOTHING
        """,
        (credential_id, epoch_id, issuer_id, prime_value),
    )
    return cursor.rowcount == 1


def get_revocation(cursor: sqlite3.Cursor, credential_id: str) -> RevocationRecord | None:
    """Return the revocation fact for ``credential_id`` if one exists."""
    cursor.execute(
        """
        SELECT credential_id, revoked_at, epoch_id, issuer_id, prime_value
        FROM revocations
        WHERE credential_id = ?
        """,
        (credential_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return RevocationRecord(
        credential_id=row[0],
        revoked_at=str(row[1]),
        epoch_id=int(row[2]),
        issuer_id=row[3],
        prime_value=row[4],
    )


def get_revocation_times(
    cursor: sqlite3.Cursor,
    credential_ids: Iterable[str],
    *,
    chunk_size: int = 500,
) -> dict[str, str]:
    """Map each revoked credential among ``credential_ids`` to its ``revoked_at``.

    Lookups are issued as chunked ``IN`` queries to stay under SQLite's bound
    parameter limit.  Ids without a revocation are simply absent.
    """
    unique_ids = list(dict.fromkeys(credential_ids))
    revoked: dict[str, str] = {}
    for start in range(0, len(unique_ids), max(chunk_size, 1)):
        chunk = unique_ids[start : start + max(chunk_size, 1)]
        placeholders = ", ".join("?" for _ in chunk)
        cursor.execute(
            f"SELECT credential_id, revoked_at FROM revocations "
            f"WHERE credential_id IN ({placeholders})",
            chunk,
        )
        for credential_id, revoked_at in cursor.fetchall():
            revoked[credential_id] = str(revoked_at)
    return revoked


def count_revocations(cursor: sqlite3.Cursor) -> int:
    cursor.execute("SELECT COUNT(*) FROM revocations")
    return int(cursor.fetchone()[0])


def count_revocations_by_epoch(cursor: sqlite3.Cursor) -> list[EpochRevocationCount]:
    """Return revocation counts grouped by epoch, ascending."""
    cursor.execute("""
        SELECT epoch_id, COUNT(*)
        FROM revocations
        GROUP BY epoch_id
        ORDER BY epoch_id
        """)
    return [EpochRevocationCount(epoch_id=int(row[0]), count=int(row[1])) for row in cursor]
