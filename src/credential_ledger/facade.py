"""Public composition root for the credential ledger.

``CredentialLedger`` owns one :class:`~credential_ledger.db.LedgerStore` and
the services built on it.  There is no module-level instance: the process
entry point constructs the ledger, opens it, and closes it.

Usage:
    from credential_ledger import CredentialLedger

    with CredentialLedger(db_path="data/ledger.db") as ledger:
        ledger.record_revocation(
            {"credential_id": "C1", "epoch_id": 5, "issuer_id": "I1", "prime_value": "1009"}
        )
        outcome = ledger.verify("C1", 5, possibly_revoked=True)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import credential_ledger.config as ledger_config
from credential_ledger.config import LedgerConfig
from credential_ledger.db.connection import LedgerStore
from credential_ledger.db.errors import DatabaseError, LedgerNotOpenError
from credential_ledger.db.types import (
    FalsePositiveEpochStats,
    RevocationBatch,
    RevocationBatchItem,
    RevocationStats,
)
from credential_ledger.results import BatchProcessResult, VerificationOutcome
from credential_ledger.services.false_positive_guard import (
    FalsePositiveAnalysis,
    FalsePositiveGuard,
)
from credential_ledger.services.metrics import MetricsRecorder
from credential_ledger.services.revocation_service import RevocationInput, RevocationLedgerService
from credential_ledger.services.verification_service import CheckInput, ReconciliationEngine

logger = logging.getLogger(__name__)


class CredentialLedger:
    """Store plus services behind the public operation surface.

    Args:
        settings: Configuration; defaults to the module-level ``config``.
        db_path: Overrides ``settings.database`` path when given.
    """

    def __init__(
        self,
        settings: LedgerConfig | None = None,
        *,
        db_path: Path | str | None = None,
    ) -> None:
        settings = settings or ledger_config.config
        self.settings = settings
        self.store = LedgerStore(
            db_path if db_path is not None else settings.database.absolute_path,
            busy_timeout_ms=settings.database.busy_timeout_ms,
        )
        self.guard = FalsePositiveGuard(
            expected_rate=settings.verification.expected_false_positive_rate,
            problematic_threshold=settings.verification.problematic_epoch_threshold,
        )
        self._metrics: MetricsRecorder | None = None
        self._revocations: RevocationLedgerService | None = None
        self._engine: ReconciliationEngine | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> CredentialLedger:
        """Open the store and build the services. Idempotent."""
        if self._engine is not None:
            return self
        self.store.open()
        self._metrics = MetricsRecorder(
            self.store,
            flush_size=self.settings.metrics.flush_size,
            enabled=self.settings.metrics.enabled,
        )
        self._revocations = RevocationLedgerService(self.store, self._metrics)
        self._engine = ReconciliationEngine(
            self.store,
            self._metrics,
            lookup_chunk_size=self.settings.verification.lookup_chunk_size,
        )
        return self

    def close(self) -> None:
        """Flush buffered metrics and close the store."""
        if self._metrics is not None:
            self._metrics.close()
        self.store.close()
        self._metrics = None
        self._revocations = None
        self._engine = None

    def __enter__(self) -> CredentialLedger:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def metrics(self) -> MetricsRecorder:
        if self._metrics is None:
            raise LedgerNotOpenError("Credential ledger is not open. Call open() first.")
        return self._metrics

    @property
    def revocations(self) -> RevocationLedgerService:
        if self._revocations is None:
            raise LedgerNotOpenError("Credential ledger is not open. Call open() first.")
        return self._revocations

    @property
    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            raise LedgerNotOpenError("Credential ledger is not open. Call open() first.")
        return self._engine

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(
        self, credential_id: str, epoch_id: int, possibly_revoked: bool
    ) -> VerificationOutcome:
        return self.engine.verify(credential_id, epoch_id, possibly_revoked)

    def batch_verify(self, checks: Iterable[CheckInput]) -> dict[str, VerificationOutcome]:
        return self.engine.batch_verify(checks)

    def get_false_positive_stats(self) -> list[FalsePositiveEpochStats] | None:
        return self.engine.get_false_positive_stats()

    def get_false_positive_report(self) -> FalsePositiveAnalysis | None:
        """Guard analysis over every stored observation; None when the store fails."""
        try:
            observations = self.engine.get_false_positive_observations()
        except DatabaseError:
            logger.warning("Failed to read false positive observations", exc_info=True)
            return None
        return self.guard.analyze(observations)

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def record_revocation(self, revocation: RevocationInput) -> bool:
        return self.revocations.record_revocation(revocation)

    def create_batch(self) -> int | None:
        return self.revocations.create_batch()

    def add_to_batch(self, batch_id: int, items: Iterable[RevocationInput]) -> bool:
        return self.revocations.add_to_batch(batch_id, items)

    def process_batch(self, batch_id: int) -> BatchProcessResult:
        return self.revocations.process_batch(batch_id)

    def get_batch(self, batch_id: int) -> RevocationBatch | None:
        return self.revocations.get_batch(batch_id)

    def get_batch_items(self, batch_id: int) -> list[RevocationBatchItem]:
        return self.revocations.get_batch_items(batch_id)

    def get_pending_batches(self) -> list[RevocationBatch]:
        return self.revocations.get_pending_batches()

    def get_revocation_stats(self) -> RevocationStats | None:
        return self.revocations.get_revocation_stats()
