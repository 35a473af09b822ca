"""Schema creation for the SQLite ledger store.

The schema layer is intentionally isolated from query code so schema changes
are reviewable without wading through unrelated repository logic.

Tables:
    - revocations: append-only confirmed revocations, one row per credential.
    - false_positive_observations: learned filter discrepancies keyed by
      (credential_id, epoch_id).
    - revocation_batches / revocation_batch_items: bulk revocation work units.
    - operation_metrics: append-only timing rows used only for aggregation.
"""

from __future__ import annotations

import sqlite3

from credential_ledger.db.constants import BATCH_STATUS_PENDING, BATCH_STATUS_PROCESSED

TABLE_NAMES = (
    "revocations",
    "false_positive_observations",
    "revocation_batches",
    "revocation_batch_items",
    "operation_metrics",
)

_STATUS_CHECK = f"status IN ('{BATCH_STATUS_PENDING}', '{BATCH_STATUS_PROCESSED}')"

TABLE_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS revocations (
        credential_id TEXT PRIMARY KEY,
        revoked_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        epoch_id INTEGER NOT NULL,
        issuer_id TEXT NOT NULL,
        prime_value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS false_positive_observations (
        credential_id TEXT NOT NULL,
        epoch_id INTEGER NOT NULL,
        first_observed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        occurrence_count INTEGER NOT NULL DEFAULT 1 CHECK (occurrence_count >= 1),
        PRIMARY KEY (credential_id, epoch_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS revocation_batches (
        batch_id INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        processed_at TIMESTAMP,
        item_count INTEGER NOT NULL DEFAULT 0 CHECK (item_count >= 0),
        status TEXT NOT NULL DEFAULT '{BATCH_STATUS_PENDING}' CHECK ({_STATUS_CHECK})
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS revocation_batch_items (
        item_id INTEGER PRIMARY KEY AUTOINCREMENT,
        batch_id INTEGER NOT NULL,
        credential_id TEXT NOT NULL,
        prime_value TEXT NOT NULL,
        epoch_id INTEGER NOT NULL,
        issuer_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT '{BATCH_STATUS_PENDING}' CHECK ({_STATUS_CHECK}),
        FOREIGN KEY (batch_id) REFERENCES revocation_batches(batch_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS operation_metrics (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        epoch_id INTEGER NOT NULL,
        operation_type TEXT NOT NULL,
        execution_time_ms REAL NOT NULL,
        timestamp TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        false_positive_detected INTEGER NOT NULL DEFAULT 0
    )
    """,
)

# Hot-path index rationale:
# 1. revocation purges delete every observation for one credential.
# 2. revocation stats group by epoch.
# 3. batch processing reads items per batch grouped by epoch.
# 4. pending batch listings filter by status ordered by age.
# 5. performance aggregation groups by operation type.
INDEX_STATEMENTS = (
    (
        "CREATE INDEX IF NOT EXISTS idx_false_positive_observations_credential "
        "ON false_positive_observations(credential_id)"
    ),
    "CREATE INDEX IF NOT EXISTS idx_revocations_epoch ON revocations(epoch_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_revocation_batch_items_batch_epoch "
        "ON revocation_batch_items(batch_id, epoch_id)"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_revocation_batches_status_created "
        "ON revocation_batches(status, created_at)"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_operation_metrics_operation_type "
        "ON operation_metrics(operation_type)"
    ),
)


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all ledger tables and indexes in one transaction.

    Safe to call repeatedly; every statement is ``IF NOT EXISTS``.
    """
    cursor = conn.cursor()
    cursor.execute("BEGIN IMMEDIATE")
    try:
        for statement in TABLE_STATEMENTS:
            cursor.execute(statement)
        for statement in INDEX_STATEMENTS:
            cursor.execute(statement)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def list_tables(conn: sqlite3.Connection) -> set[str]:
    """Return the names of user tables present in the database."""
    cursor = conn.cursor()
    cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row[0] for row in cursor.fetchall() if not row[0].startswith("sqlite_")}
