"""Buffered operation-metric recording.

Every verification path records one ``operation_metrics`` row, including the
filter fast path that must not touch storage.  Rows are therefore buffered in
memory and written in one transaction when the buffer fills, when stats are
read, and when the ledger closes.  Callers that must not block on the write
lock (the verification fast path) pass ``background=True`` so a full buffer
is flushed on a daemon thread instead of inline; at most one such flush runs
at a time and :meth:`MetricsRecorder.close` waits for it.

A failed flush is **never fatal**: the rows are dropped with a warning and the
operation that produced them keeps its result.  Metrics are observability
data, not ledger facts.
"""

from __future__ import annotations

import logging
import threading
import time

from credential_ledger.db import metrics_repo
from credential_ledger.db.connection import LedgerStore
from credential_ledger.db.constants import OperationType
from credential_ledger.db.errors import DatabaseError, raise_write_error
from credential_ledger.db.types import OperationMetric

logger = logging.getLogger(__name__)


def elapsed_ms(started: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - started) * 1000.0


class MetricsRecorder:
    """Thread-safe buffer in front of ``operation_metrics``.

    Args:
        store: Open ledger store the rows are written to.
        flush_size: Buffered row count that triggers a write (minimum 1).
        enabled: When False, :meth:`record` is a no-op.
    """

    def __init__(self, store: LedgerStore, *, flush_size: int = 20, enabled: bool = True) -> None:
        self._store = store
        self._flush_size = max(flush_size, 1)
        self._enabled = enabled
        self._buffer: list[OperationMetric] = []
        self._lock = threading.Lock()
        self._flusher: threading.Thread | None = None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def record(
        self,
        epoch_id: int,
        operation_type: OperationType,
        execution_time_ms: float,
        *,
        false_positive_detected: bool = False,
        background: bool = False,
    ) -> None:
        """Buffer one metric row, flushing when the buffer is full.

        With ``background=True`` the flush runs on a daemon thread and this
        call returns without touching storage.
        """
        if not self._enabled:
            return
        metric = OperationMetric(
            epoch_id=epoch_id,
            operation_type=operation_type.value,
            execution_time_ms=execution_time_ms,
            false_positive_detected=false_positive_detected,
        )
        with self._lock:
            self._buffer.append(metric)
            if len(self._buffer) < self._flush_size:
                return
            if background:
                if self._flusher is None or not self._flusher.is_alive():
                    # The thread blocks on this lock until we release it.
                    self._flusher = threading.Thread(
                        target=self.flush, name="ledger-metrics-flush", daemon=True
                    )
                    self._flusher.start()
                return
        self.flush()

    def flush(self) -> int:
        """Write all buffered rows; return how many were written (0 on failure)."""
        with self._lock:
            pending, self._buffer = self._buffer, []
        if not pending:
            return 0
        try:
            return self._write(pending)
        except DatabaseError:
            logger.warning(
                "Dropping %d operation metric(s) after a failed flush.",
                len(pending),
                exc_info=True,
            )
            return 0

    def close(self) -> int:
        """Wait for any background flush, then flush what is still buffered."""
        with self._lock:
            flusher, self._flusher = self._flusher, None
        if flusher is not None:
            flusher.join()
        return self.flush()

    def _write(self, metrics: list[OperationMetric]) -> int:
        try:
            with self._store.connection_scope(write=True) as conn:
                return metrics_repo.insert_metrics(conn.cursor(), metrics)
        except Exception as exc:
            raise_write_error("metrics.flush", exc, details=f"rows={len(metrics)}")
