"""Operation metric repository operations (append-only)."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence

from credential_ledger.db.types import OperationMetric, OperationPerformance


def insert_metrics(cursor: sqlite3.Cursor, metrics: Sequence[OperationMetric]) -> int:
    """Append metric rows and return how many were written."""
    cursor.executemany(
        """
        INSERT INTO operation_metrics
            (epoch_id, operation_type, execution_time_ms, false_positive_detected)
        VALUES (?, ?, ?, ?)
        """,
        [
            (
                metric.epoch_id,
                metric.operation_type,
                metric.execution_time_ms,
                1 if metric.false_positive_detected else 0,
            )
            for metric in metrics
        ],
    )
    return len(metrics)


def count_metrics(cursor: sqlite3.Cursor, operation_type: str | None = None) -> int:
    if operation_type is None:
        cursor.execute("SELECT COUNT(*) FROM operation_metrics")
    else:
        cursor.execute(
            "SELECT COUNT(*) FROM operation_metrics WHERE operation_type = ?",
            (operation_type,),
        )
    return int(cursor.fetchone()[0])


def performance_by_operation(cursor: sqlite3.Cursor) -> list[OperationPerformance]:
    """Aggregate timing per operation type, alphabetically by type."""
    cursor.execute("""
        SELECT
            operation_type,
            COUNT(*),
            AVG(execution_time_ms),
            MIN(execution_time_ms),
            MAX(execution_time_ms),
            SUM(false_positive_detected)
        FROM operation_metrics
        GROUP BY operation_type
        ORDER BY operation_type
        """)
    return [
        OperationPerformance(
            operation_type=row[0],
            operation_count=int(row[1]),
            avg_execution_time_ms=float(row[2]),
            min_execution_time_ms=float(row[3]),
            max_execution_time_ms=float(row[4]),
            false_positive_count=int(row[5] or 0),
        )
        for row in cursor.fetchall()
    ]
