"""Cursor-level tests for the ledger repositories.

Each test composes repository functions inside one ``connection_scope`` the
same way the services do.
"""

from __future__ import annotations

import pytest

from credential_ledger.db import (
    batches_repo,
    false_positives_repo,
    metrics_repo,
    revocations_repo,
)
from credential_ledger.db.constants import BATCH_STATUS_PENDING, BATCH_STATUS_PROCESSED
from credential_ledger.db.types import BatchStats, OperationMetric


def _revoke(cursor, credential_id: str, epoch_id: int = 1) -> bool:
    return revocations_repo.insert_revocation(
        cursor,
        credential_id=credential_id,
        epoch_id=epoch_id,
        issuer_id="issuer-1",
        prime_value="1009",
    )


# ============================================================================
# REVOCATIONS
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestRevocationsRepo:
    def test_insert_then_get(self, store):
        with store.connection_scope(write=True) as conn:
            assert _revoke(conn.cursor(), "c1", 4) is True

        with store.connection_scope() as conn:
            record = revocations_repo.get_revocation(conn.cursor(), "c1")

        assert record is not None
        assert record.epoch_id == 4
        assert record.issuer_id == "issuer-1"
        assert record.prime_value == "1009"
        assert record.revoked_at

    def test_duplicate_insert_keeps_original_row(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            assert _revoke(cursor, "c1", 4) is True
            assert _revoke(cursor, "c1", 9) is False

        with store.connection_scope() as conn:
            cursor = conn.cursor()
            assert revocations_repo.count_revocations(cursor) == 1
            assert revocations_repo.get_revocation(cursor, "c1").epoch_id == 4

    def test_get_missing_returns_none(self, store):
        with store.connection_scope() as conn:
            assert revocations_repo.get_revocation(conn.cursor(), "missing") is None

    def test_revocation_times_chunked_lookup(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            for index in range(7):
                _revoke(cursor, f"c{index}")

        with store.connection_scope() as conn:
            revoked = revocations_repo.get_revocation_times(
                conn.cursor(),
                ["c0", "c3", "c6", "unknown", "c3"],
                chunk_size=2,
            )

        assert set(revoked) == {"c0", "c3", "c6"}

    def test_counts_by_epoch(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            _revoke(cursor, "a", 2)
            _revoke(cursor, "b", 1)
            _revoke(cursor, "c", 2)

        with store.connection_scope() as conn:
            counts = revocations_repo.count_revocations_by_epoch(conn.cursor())

        assert [(row.epoch_id, row.count) for row in counts] == [(1, 1), (2, 2)]


# ============================================================================
# FALSE POSITIVE OBSERVATIONS
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestFalsePositivesRepo:
    def test_insert_and_increment(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            false_positives_repo.insert_observation(cursor, "c1", 3)
            assert false_positives_repo.increment_observation(cursor, "c1", 3) == 2
            assert false_positives_repo.increment_observation(cursor, "c1", 3) == 3

        with store.connection_scope() as conn:
            observation = false_positives_repo.get_observation(conn.cursor(), "c1", 3)

        assert observation is not None
        assert observation.occurrence_count == 3

    def test_increment_missing_raises(self, store):
        with pytest.raises(ValueError):
            with store.connection_scope(write=True) as conn:
                false_positives_repo.increment_observation(conn.cursor(), "c1", 3)

    def test_purge_removes_every_epoch(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            false_positives_repo.insert_observation(cursor, "c1", 1)
            false_positives_repo.insert_observation(cursor, "c1", 2)
            false_positives_repo.insert_observation(cursor, "c2", 1)
            assert false_positives_repo.purge_observations(cursor, "c1") == 2

        with store.connection_scope() as conn:
            remaining = false_positives_repo.list_observations(conn.cursor())

        assert [(o.credential_id, o.epoch_id) for o in remaining] == [("c2", 1)]

    def test_stats_by_epoch(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            false_positives_repo.insert_observation(cursor, "a", 1)
            false_positives_repo.insert_observation(cursor, "b", 1)
            false_positives_repo.increment_observation(cursor, "b", 1)
            false_positives_repo.increment_observation(cursor, "b", 1)
            false_positives_repo.insert_observation(cursor, "c", 2)

        with store.connection_scope() as conn:
            stats = false_positives_repo.stats_by_epoch(conn.cursor())

        assert [s.epoch_id for s in stats] == [1, 2]
        assert stats[0].total_false_positives == 2
        assert stats[0].avg_occurrences == pytest.approx(2.0)
        assert stats[0].max_occurrences == 3
        assert stats[1].total_false_positives == 1


# ============================================================================
# BATCHES
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestBatchesRepo:
    def _add_item(self, cursor, batch_id: int, credential_id: str, epoch_id: int) -> int:
        return batches_repo.insert_batch_item(
            cursor,
            batch_id,
            credential_id=credential_id,
            prime_value="7",
            epoch_id=epoch_id,
            issuer_id="issuer-1",
        )

    def test_new_batch_is_pending_and_empty(self, store):
        with store.connection_scope(write=True) as conn:
            batch_id = batches_repo.insert_batch(conn.cursor())

        with store.connection_scope() as conn:
            batch = batches_repo.get_batch(conn.cursor(), batch_id)

        assert batch.status == BATCH_STATUS_PENDING
        assert batch.item_count == 0
        assert batch.processed_at is None

    def test_items_are_returned_in_insertion_order(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            batch_id = batches_repo.insert_batch(cursor)
            self._add_item(cursor, batch_id, "z", 2)
            self._add_item(cursor, batch_id, "a", 1)
            batches_repo.increment_item_count(cursor, batch_id, 2)

        with store.connection_scope() as conn:
            cursor = conn.cursor()
            items = batches_repo.get_batch_items(cursor, batch_id)
            batch = batches_repo.get_batch(cursor, batch_id)

        assert [item.credential_id for item in items] == ["z", "a"]
        assert batch.item_count == 2

    def test_mark_processed_updates_batch_and_items(self, store):
        with store.connection_scope(write=True) as conn:
            cursor = conn.cursor()
            batch_id = batches_repo.insert_batch(cursor)
            self._add_item(cursor, batch_id, "c1", 1)
            batches_repo.mark_batch_processed(cursor, batch_id)

        with store.connection_scope() as conn:
            cursor = conn.cursor()
            batch = batches_repo.get_batch(cursor, batch_id)
            items = batches_repo.get_batch_items(cursor, batch_id)
            pending = batches_repo.list_pending_batches(cursor)

        assert batch.status == BATCH_STATUS_PROCESSED
        assert batch.processed_at is not None
        assert all(item.status == BATCH_STATUS_PROCESSED for item in items)
        assert pending == []

    def test_batch_stats_empty_store_is_zero(self, store):
        with store.connection_scope() as conn:
            assert batches_repo.batch_stats(conn.cursor()) == BatchStats()


# ============================================================================
# METRICS
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestMetricsRepo:
    def test_insert_and_aggregate(self, store):
        rows = [
            OperationMetric(1, "bloom-filter", 1.0),
            OperationMetric(1, "bloom-filter", 3.0),
            OperationMetric(2, "new-false-positive", 5.0, false_positive_detected=True),
        ]
        with store.connection_scope(write=True) as conn:
            assert metrics_repo.insert_metrics(conn.cursor(), rows) == 3

        with store.connection_scope() as conn:
            cursor = conn.cursor()
            assert metrics_repo.count_metrics(cursor) == 3
            assert metrics_repo.count_metrics(cursor, "bloom-filter") == 2
            performance = metrics_repo.performance_by_operation(cursor)

        by_type = {row.operation_type: row for row in performance}
        assert by_type["bloom-filter"].operation_count == 2
        assert by_type["bloom-filter"].avg_execution_time_ms == pytest.approx(2.0)
        assert by_type["bloom-filter"].min_execution_time_ms == pytest.approx(1.0)
        assert by_type["bloom-filter"].max_execution_time_ms == pytest.approx(3.0)
        assert by_type["bloom-filter"].false_positive_count == 0
        assert by_type["new-false-positive"].false_positive_count == 1
