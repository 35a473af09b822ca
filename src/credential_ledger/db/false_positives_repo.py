"""False-positive observation repository operations.

An observation records that the membership filter flagged a credential at an
epoch while no revocation existed.  Observations are counted up on repeat and
purged once the credential is actually revoked.
"""

from __future__ import annotations

import sqlite3

from credential_ledger.db.types import FalsePositiveEpochStats, FalsePositiveObservation

_OBSERVATION_COLUMNS = "credential_id, epoch_id, first_observed_at, occurrence_count"


def _row_to_observation(row: tuple) -> FalsePositiveObservation:
    return FalsePositiveObservation(
        credential_id=row[0],
        epoch_id=int(row[1]),
        first_observed_at=str(row[2]),
        occurrence_count=int(row[3]),
    )


def get_observation(
    cursor: sqlite3.Cursor, credential_id: str, epoch_id: int
) -> FalsePositiveObservation | None:
    """Return the observation for ``(credential_id, epoch_id)`` if present."""
    cursor.execute(
        f"""
        SELECT {_OBSERVATION_COLUMNS}
        FROM false_positive_observations
        WHERE credential_id = ? AND epoch_id = ?
        """,
        (credential_id, epoch_id),
    )
    row = cursor.fetchone()
    return _row_to_observation(row) if row else None


def insert_observation(cursor: sqlite3.Cursor, credential_id: str, epoch_id: int) -> None:
    """Create a first observation with ``occurrence_count = 1``."""
    cursor.execute(
        """
        INSERT INTO false_positive_observations (credential_id, epoch_id)
        VALUES (?, ?)
        """,
        (credential_id, epoch_id),
    )


def increment_observation(cursor: sqlite3.Cursor, credential_id: str, epoch_id: int) -> int:
    """Bump ``occurrence_count`` and return the new value."""
    cursor.execute(
        """
        UPDATE false_positive_observations
        SET occurrence_count = occurrence_count + 1
        WHERE credential_id = ? AND epoch_id = ?
        """,
        (credential_id, epoch_id),
    )
    if cursor.rowcount != 1:
        raise ValueError(
            f"No false positive observation for credential {credential_id!r} at epoch {epoch_id}."
        )
    cursor.execute(
        """
        SELECT occurrence_count
        FROM false_positive_observations
        WHERE credential_id = ? AND epoch_id = ?
        """,
        (credential_id, epoch_id),
    )
    return int(cursor.fetchone()[0])


def purge_observations(cursor: sqlite3.Cursor, credential_id: str) -> int:
    """Delete every observation for ``credential_id`` across epochs."""
    cursor.execute(
        "DELETE FROM false_positive_observations WHERE credential_id = ?",
        (credential_id,),
    )
    return cursor.rowcount


def list_observations(cursor: sqlite3.Cursor) -> list[FalsePositiveObservation]:
    """Return all observations ordered by epoch then credential."""
    cursor.execute(f"""
        SELECT {_OBSERVATION_COLUMNS}
        FROM false_positive_observations
        ORDER BY epoch_id, credential_id
        """)
    return [_row_to_observation(row) for row in cursor.fetchall()]


def stats_by_epoch(cursor: sqlite3.Cursor) -> list[FalsePositiveEpochStats]:
    """Aggregate observations per epoch, ascending."""
    cursor.execute("""
        SELECT
            epoch_id,
            COUNT(*),
            AVG(occurrence_count),
            MAX(occurrence_count)
        FROM false_positive_observations
        GROUP BY epoch_id
        ORDER BY epoch_id
        """)
    return [
        FalsePositiveEpochStats(
            epoch_id=int(row[0]),
            total_false_positives=int(row[1]),
            avg_occurrences=float(row[2]),
            max_occurrences=int(row[3]),
        )
        for row in cursor.fetchall()
    ]
