"""Revocation batch repository operations."""

from __future__ import annotations

import sqlite3

from credential_ledger.db.constants import BATCH_STATUS_PENDING, BATCH_STATUS_PROCESSED
from credential_ledger.db.types import BatchStats, RevocationBatch, RevocationBatchItem

_BATCH_COLUMNS = "batch_id, created_at, processed_at, item_count, status"
_ITEM_COLUMNS = "item_id, batch_id, credential_id, prime_value, epoch_id, issuer_id, status"


def _row_to_batch(row: tuple) -> RevocationBatch:
    return RevocationBatch(
        batch_id=int(row[0]),
        created_at=str(row[1]),
        processed_at=str(row[2]) if row[2] is not None else None,
        item_count=int(row[3]),
        status=row[4],
    )


def _row_to_item(row: tuple) -> RevocationBatchItem:
    return RevocationBatchItem(
        item_id=int(row[0]),
        batch_id=int(row[1]),
        credential_id=row[2],
        prime_value=row[3],
        epoch_id=int(row[4]),
        issuer_id=row[5],
        status=row[6],
    )


def insert_batch(cursor: sqlite3.Cursor) -> int:
    """Create an empty pending batch and return its id."""
    cursor.execute("INSERT INTO revocation_batches DEFAULT VALUES")
    batch_id = cursor.lastrowid
    if batch_id is None:
        raise ValueError("Failed to create revocation batch.")
    return int(batch_id)


def get_batch(cursor: sqlite3.Cursor, batch_id: int) -> RevocationBatch | None:
    cursor.execute(
        f"SELECT {_BATCH_COLUMNS} FROM revocation_batches WHERE batch_id = ?",
        (batch_id,),
    )
    row = cursor.fetchone()
    return _row_to_batch(row) if row else None


def insert_batch_item(
    cursor: sqlite3.Cursor,
    batch_id: int,
    *,
    credential_id: str,
    prime_value: str,
    epoch_id: int,
    issuer_id: str,
) -> int:
    """Append one pending item to a batch and return its item id."""
    cursor.execute(
        """
        INSERT INTO revocation_batch_items
            (batch_id, credential_id, prime_value, epoch_id, issuer_id)
        VALUES (?, ?, ?, ?, ?)
        """,
        (batch_id, credential_id, prime_value, epoch_id, issuer_id),
    )
    item_id = cursor.lastrowid
    if item_id is None:
        raise ValueError("Failed to create revocation batch item.")
    return int(item_id)


def increment_item_count(cursor: sqlite3.Cursor, batch_id: int, count: int) -> None:
    cursor.execute(
        "UPDATE revocation_batches SET item_count = item_count + ? WHERE batch_id = ?",
        (count, batch_id),
    )


def get_batch_items(cursor: sqlite3.Cursor, batch_id: int) -> list[RevocationBatchItem]:
    """Return a batch's items in insertion order."""
    cursor.execute(
        f"SELECT {_ITEM_COLUMNS} FROM revocation_batch_items WHERE batch_id = ? ORDER BY item_id",
        (batch_id,),
    )
    return [_row_to_item(row) for row in cursor.fetchall()]


def mark_batch_processed(cursor: sqlite3.Cursor, batch_id: int) -> None:
    """Flip a pending batch and all of its items to ``processed``."""
    cursor.execute(
        f"""
        UPDATE revocation_batches
        SET status = '{BATCH_STATUS_PROCESSED}', processed_at = CURRENT_TIMESTAMP
        WHERE batch_id = ? AND status = '{BATCH_STATUS_PENDING}'
        """,
        (batch_id,),
    )
    cursor.execute(
        f"UPDATE revocation_batch_items SET status = '{BATCH_STATUS_PROCESSED}' WHERE batch_id = ?",
        (batch_id,),
    )


def list_pending_batches(cursor: sqlite3.Cursor) -> list[RevocationBatch]:
    """Return pending batches, oldest first."""
    cursor.execute(
        f"""
        SELECT {_BATCH_COLUMNS}
        FROM revocation_batches
        WHERE status = ?
        ORDER BY created_at, batch_id
        """,
        (BATCH_STATUS_PENDING,),
    )
    return [_row_to_batch(row) for row in cursor.fetchall()]


def batch_stats(cursor: sqlite3.Cursor) -> BatchStats:
    """Aggregate counts across all batches; zeros when none exist."""
    cursor.execute(
        """
        SELECT
            COUNT(*),
            SUM(CASE WHEN status = ? THEN 1 ELSE 0 END),
            SUM(CASE WHEN status = ? THEN 1 ELSE 0 END),
            SUM(item_count),
            AVG(item_count)
        FROM revocation_batches
        """,
        (BATCH_STATUS_PENDING, BATCH_STATUS_PROCESSED),
    )
    total, pending, processed, items, avg_size = cursor.fetchone()
    return BatchStats(
        total_batches=int(total or 0),
        pending_batches=int(pending or 0),
        processed_batches=int(processed or 0),
        total_items=int(items or 0),
        avg_batch_size=float(avg_size or 0.0),
    )
