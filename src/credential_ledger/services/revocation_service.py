"""Revocation ledger service: confirmed revocations and batch lifecycle.

Caller contract
---------------
- ``record_revocation`` returns ``True`` when the credential is recorded as
  revoked, including when it already was (revocation is idempotent), and
  ``False`` on invalid input or storage failure.  The caller decides whether
  to retry.
- ``add_to_batch`` is all-or-nothing: either every item is appended and the
  batch's ``item_count`` updated, or nothing changes.
- ``process_batch`` always returns a :class:`BatchProcessResult`; failures
  are reported in the result, never raised.
- ``create_batch`` and ``get_revocation_stats`` return None when the store
  fails.  The batch and item readers still raise ``DatabaseReadError``.

Revocation side effects
-----------------------
Recording a revocation deletes every false-positive observation for the
credential in the **same transaction** as the insert, for single records and
for batch epoch groups alike.  The purge also runs when the revocation already
existed, so observations written by a racing verification are cleaned up by
the next recording of that credential.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from itertools import groupby
from typing import Any

from pydantic import ValidationError

from credential_ledger.db import batches_repo, false_positives_repo, metrics_repo, revocations_repo
from credential_ledger.db.connection import LedgerStore
from credential_ledger.db.constants import BATCH_STATUS_PROCESSED, OperationType
from credential_ledger.db.errors import DatabaseError, raise_read_error, raise_write_error
from credential_ledger.db.types import RevocationBatch, RevocationBatchItem, RevocationStats
from credential_ledger.models import RevocationItem
from credential_ledger.results import BatchProcessResult
from credential_ledger.services.metrics import MetricsRecorder, elapsed_ms

logger = logging.getLogger(__name__)

RevocationInput = RevocationItem | Mapping[str, Any]


def _as_item(value: RevocationInput) -> RevocationItem:
    if isinstance(value, RevocationItem):
        return value
    return RevocationItem.model_validate(value)


class RevocationLedgerService:
    """Writes confirmed revocations and manages revocation batches.

    Args:
        store: Open ledger store.
        metrics: Recorder for ``revocation`` / ``batch-revocation`` timings.
    """

    def __init__(self, store: LedgerStore, metrics: MetricsRecorder) -> None:
        self._store = store
        self._metrics = metrics

    # ------------------------------------------------------------------
    # Single revocations
    # ------------------------------------------------------------------

    def record_revocation(self, revocation: RevocationInput) -> bool:
        """Record a confirmed revocation and purge its false-positive history."""
        started = time.perf_counter()
        try:
            item = _as_item(revocation)
        except ValidationError:
            logger.warning("Rejected invalid revocation input: %r", revocation, exc_info=True)
            return False

        try:
            inserted = self._insert_revocations([item], operation="revocations.record")
        except DatabaseError:
            logger.warning(
                "Failed to record revocation for credential %s", item.credential_id, exc_info=True
            )
            return False

        if not inserted:
            logger.debug("Credential %s was already revoked", item.credential_id)
        self._metrics.record(item.epoch_id, OperationType.REVOCATION, elapsed_ms(started))
        return True

    def _insert_revocations(self, items: list[RevocationItem], *, operation: str) -> int:
        """Insert revocations and purge their observations in one transaction.

        Returns the number of newly inserted rows (duplicates count as 0).
        """
        try:
            with self._store.connection_scope(write=True) as conn:
                cursor = conn.cursor()
                inserted = 0
                for item in items:
                    if revocations_repo.insert_revocation(
                        cursor,
                        credential_id=item.credential_id,
                        epoch_id=item.epoch_id,
                        issuer_id=item.issuer_id,
                        prime_value=item.prime_value,
                    ):
                        inserted += 1
                    false_positives_repo.purge_observations(cursor, item.credential_id)
                return inserted
        except Exception as exc:
            raise_write_error(operation, exc, details=f"items={len(items)}")

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def create_batch(self) -> int | None:
        """Allocate a new pending batch with ``item_count = 0``.

        Returns None when the store fails.
        """
        try:
            batch_id = self._insert_batch()
        except DatabaseError:
            logger.warning("Failed to create revocation batch", exc_info=True)
            return None
        logger.debug("Created revocation batch %s", batch_id)
        return batch_id

    def _insert_batch(self) -> int:
        try:
            with self._store.connection_scope(write=True) as conn:
                return batches_repo.insert_batch(conn.cursor())
        except Exception as exc:
            raise_write_error("batches.create", exc)

    def add_to_batch(self, batch_id: int, items: Iterable[RevocationInput]) -> bool:
        """Append items to a pending batch atomically.

        Returns False (and changes nothing) when any item is invalid, the batch
        does not exist or was already processed, or the store fails.
        """
        try:
            validated = [_as_item(item) for item in items]
        except ValidationError:
            logger.warning("Rejected invalid items for batch %s", batch_id, exc_info=True)
            return False

        try:
            with self._store.connection_scope(write=True) as conn:
                cursor = conn.cursor()
                batch = batches_repo.get_batch(cursor, batch_id)
                if batch is None:
                    logger.warning("Cannot add items to unknown batch %s", batch_id)
                    return False
                if batch.status == BATCH_STATUS_PROCESSED:
                    logger.warning("Cannot add items to processed batch %s", batch_id)
                    return False
                for item in validated:
                    batches_repo.insert_batch_item(
                        cursor,
                        batch_id,
                        credential_id=item.credential_id,
                        prime_value=item.prime_value,
                        epoch_id=item.epoch_id,
                        issuer_id=item.issuer_id,
                    )
                batches_repo.increment_item_count(cursor, batch_id, len(validated))
        except Exception:
            logger.warning(
                "Failed to add %d item(s) to batch %s", len(validated), batch_id, exc_info=True
            )
            return False
        return True

    def process_batch(self, batch_id: int) -> BatchProcessResult:
        """Record every item of a pending batch, one transaction per epoch group."""
        started = time.perf_counter()
        try:
            batch, items = self._load_batch(batch_id)
        except DatabaseError as exc:
            logger.warning("Failed to load batch %s", batch_id, exc_info=True)
            return BatchProcessResult(
                success=False, execution_time_ms=elapsed_ms(started), error=str(exc)
            )

        error: str | None = None
        if batch is None:
            error = "Batch not found"
        elif batch.status == BATCH_STATUS_PROCESSED:
            error = "Batch already processed"
        elif not items:
            error = "No items in batch"
        if error is not None:
            return BatchProcessResult(
                success=False, execution_time_ms=elapsed_ms(started), error=error
            )

        by_epoch = sorted(items, key=lambda batch_item: batch_item.epoch_id)
        try:
            for epoch_id, group in groupby(by_epoch, key=lambda batch_item: batch_item.epoch_id):
                group_started = time.perf_counter()
                revocations = [
                    RevocationItem(
                        credential_id=batch_item.credential_id,
                        epoch_id=batch_item.epoch_id,
                        issuer_id=batch_item.issuer_id,
                        prime_value=batch_item.prime_value,
                    )
                    for batch_item in group
                ]
                self._insert_revocations(
                    revocations, operation=f"batches.process.epoch_{epoch_id}"
                )
                self._metrics.record(
                    epoch_id, OperationType.BATCH_REVOCATION, elapsed_ms(group_started)
                )
            self._mark_processed(batch_id)
        except DatabaseError as exc:
            logger.warning("Failed to process batch %s", batch_id, exc_info=True)
            return BatchProcessResult(
                success=False, execution_time_ms=elapsed_ms(started), error=str(exc)
            )

        logger.info("Processed revocation batch %s with %d item(s)", batch_id, len(items))
        return BatchProcessResult(
            success=True, item_count=len(items), execution_time_ms=elapsed_ms(started)
        )

    def _load_batch(
        self, batch_id: int
    ) -> tuple[RevocationBatch | None, list[RevocationBatchItem]]:
        try:
            with self._store.connection_scope() as conn:
                cursor = conn.cursor()
                batch = batches_repo.get_batch(cursor, batch_id)
                items = batches_repo.get_batch_items(cursor, batch_id) if batch else []
        except Exception as exc:
            raise_read_error("batches.load", exc, details=f"batch_id={batch_id}")
        return batch, items

    def _mark_processed(self, batch_id: int) -> None:
        try:
            with self._store.connection_scope(write=True) as conn:
                batches_repo.mark_batch_processed(conn.cursor(), batch_id)
        except Exception as exc:
            raise_write_error("batches.mark_processed", exc, details=f"batch_id={batch_id}")

    def get_batch(self, batch_id: int) -> RevocationBatch | None:
        return self._load_batch(batch_id)[0]

    def get_batch_items(self, batch_id: int) -> list[RevocationBatchItem]:
        return self._load_batch(batch_id)[1]

    def get_pending_batches(self) -> list[RevocationBatch]:
        """Return batches still awaiting processing, oldest first."""
        try:
            with self._store.connection_scope() as conn:
                return batches_repo.list_pending_batches(conn.cursor())
        except Exception as exc:
            raise_read_error("batches.list_pending", exc)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_revocation_stats(self) -> RevocationStats | None:
        """Aggregate revocation, batch, and timing statistics (read only).

        Returns None when the store fails.
        """
        self._metrics.flush()
        try:
            return self._read_stats()
        except DatabaseError:
            logger.warning("Failed to read revocation statistics", exc_info=True)
            return None

    def _read_stats(self) -> RevocationStats:
        try:
            with self._store.connection_scope() as conn:
                cursor = conn.cursor()
                return RevocationStats(
                    total_revocations=revocations_repo.count_revocations(cursor),
                    revocations_by_epoch=revocations_repo.count_revocations_by_epoch(cursor),
                    batch_stats=batches_repo.batch_stats(cursor),
                    performance_metrics=metrics_repo.performance_by_operation(cursor),
                )
        except Exception as exc:
            raise_read_error("revocations.stats", exc)
