"""Shared database constants for the ledger store.

This module centralizes constants that are consumed by the schema, the
repositories, and the services. Keeping them in one location prevents
accidental divergence when schema, runtime queries, and tests evolve
independently.
"""

from __future__ import annotations

from enum import Enum

# Lifecycle states shared by revocation_batches and revocation_batch_items.
BATCH_STATUS_PENDING = "pending"
BATCH_STATUS_PROCESSED = "processed"

# Epoch recorded for operations that span several epochs (batch verification)
# and for revocations whose external commit reported no epoch.
EPOCH_SENTINEL = 0


class OperationType(str, Enum):
    """Kinds of work recorded in ``operation_metrics.operation_type``.

    The four verification values double as the decision method tags returned
    to callers.
    """

    BLOOM_FILTER = "bloom-filter"
    SQL_DEFINITIVE = "sql-definitive"
    FALSE_POSITIVE_CACHE = "false-positive-cache"
    NEW_FALSE_POSITIVE = "new-false-positive"
    BATCH_VERIFY = "batch-verify"
    REVOCATION = "revocation"
    BATCH_REVOCATION = "batch-revocation"
