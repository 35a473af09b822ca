"""Verification reconciliation engine.

``ReconciliationEngine`` turns a membership-filter verdict into a definitive
decision using the local ledger.

Decision table
--------------
Evaluated in order for ``verify(credential_id, epoch_id, possibly_revoked)``:

1. ``possibly_revoked`` is False → valid, ``bloom-filter``.  The filter has no
   false negatives, so the answer is trusted outright with no storage I/O.
2. A revocation exists → invalid, ``sql-definitive``.
3. An observation exists for ``(credential_id, epoch_id)`` → increment it,
   valid, ``false-positive-cache`` with the new occurrence count.
4. Otherwise → insert an observation, valid, ``new-false-positive``.

Steps 3 and 4 run in one write transaction that re-checks the revocation
table first, so an observation is never created for a credential revoked
between the initial read and the write.

Caller contract
---------------
``verify`` returns :class:`Resolved` or :class:`Unavailable`; storage
failures never raise.  ``Unavailable`` means "use the external registry's own
verdict".  Each call records one operation metric whose type equals the
method tag; the fast path hands a full metrics buffer to a background flush
so it never waits on the write lock.  ``get_false_positive_stats`` returns
None when the store fails.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterable, Mapping
from typing import Any

from credential_ledger.db import false_positives_repo, revocations_repo
from credential_ledger.db.connection import LedgerStore
from credential_ledger.db.constants import EPOCH_SENTINEL, OperationType
from credential_ledger.db.errors import DatabaseError, raise_read_error, raise_write_error
from credential_ledger.db.types import FalsePositiveEpochStats, FalsePositiveObservation
from credential_ledger.models import CredentialCheck
from credential_ledger.results import (
    Resolved,
    Unavailable,
    VerificationDecision,
    VerificationMethod,
    VerificationOutcome,
    utc_now_iso,
)
from credential_ledger.services.metrics import MetricsRecorder, elapsed_ms

logger = logging.getLogger(__name__)

CheckInput = CredentialCheck | Mapping[str, Any]


def _as_check(value: CheckInput) -> CredentialCheck:
    if isinstance(value, CredentialCheck):
        return value
    return CredentialCheck.model_validate(value)


def _reconcile_unrevoked(
    cursor: sqlite3.Cursor, credential_id: str, epoch_id: int
) -> VerificationDecision:
    """Apply steps 3-4 of the decision table inside an open write transaction."""
    observation = false_positives_repo.get_observation(cursor, credential_id, epoch_id)
    if observation is not None:
        occurrences = false_positives_repo.increment_observation(cursor, credential_id, epoch_id)
        return VerificationDecision(
            valid=True,
            method=VerificationMethod.FALSE_POSITIVE_CACHE,
            checked_at=utc_now_iso(),
            occurrences=occurrences,
        )

    false_positives_repo.insert_observation(cursor, credential_id, epoch_id)
    return VerificationDecision(
        valid=True,
        method=VerificationMethod.NEW_FALSE_POSITIVE,
        checked_at=utc_now_iso(),
    )


def _definitive(revocation_time: str) -> VerificationDecision:
    return VerificationDecision(
        valid=False,
        method=VerificationMethod.SQL_DEFINITIVE,
        checked_at=utc_now_iso(),
        revocation_time=revocation_time,
    )


class ReconciliationEngine:
    """Reconciles filter verdicts against the revocation ledger.

    Args:
        store: Open ledger store.
        metrics: Recorder for per-decision timings.
        lookup_chunk_size: Ids per ``IN`` query in :meth:`batch_verify`.
    """

    def __init__(
        self,
        store: LedgerStore,
        metrics: MetricsRecorder,
        *,
        lookup_chunk_size: int = 500,
    ) -> None:
        self._store = store
        self._metrics = metrics
        self._lookup_chunk_size = lookup_chunk_size

    def _record(
        self,
        epoch_id: int,
        decision: VerificationDecision,
        execution_time_ms: float,
        *,
        background: bool = False,
    ) -> None:
        self._metrics.record(
            epoch_id,
            OperationType(decision.method.value),
            execution_time_ms,
            false_positive_detected=decision.method.detects_false_positive,
            background=background,
        )

    # ------------------------------------------------------------------
    # Single verification
    # ------------------------------------------------------------------

    def verify(
        self, credential_id: str, epoch_id: int, possibly_revoked: bool
    ) -> VerificationOutcome:
        """Return a definitive decision for one filter verdict."""
        started = time.perf_counter()
        if not possibly_revoked:
            decision = VerificationDecision(
                valid=True,
                method=VerificationMethod.BLOOM_FILTER,
                checked_at=utc_now_iso(),
            )
            self._record(epoch_id, decision, elapsed_ms(started), background=True)
            return Resolved(decision)

        try:
            decision = self._reconcile(credential_id, epoch_id)
        except DatabaseError as exc:
            logger.warning(
                "Ledger verification unavailable for credential %s at epoch %s",
                credential_id,
                epoch_id,
                exc_info=True,
            )
            return Unavailable(reason=str(exc))

        self._record(epoch_id, decision, elapsed_ms(started))
        return Resolved(decision)

    def _reconcile(self, credential_id: str, epoch_id: int) -> VerificationDecision:
        try:
            with self._store.connection_scope() as conn:
                revocation = revocations_repo.get_revocation(conn.cursor(), credential_id)
        except Exception as exc:
            raise_read_error(
                "verification.lookup_revocation", exc, details=f"credential_id={credential_id!r}"
            )
        if revocation is not None:
            return _definitive(revocation.revoked_at)

        try:
            with self._store.connection_scope(write=True) as conn:
                cursor = conn.cursor()
                # Re-check under the writer lock: the credential may have been
                # revoked since the read above.
                revocation = revocations_repo.get_revocation(cursor, credential_id)
                if revocation is not None:
                    return _definitive(revocation.revoked_at)
                return _reconcile_unrevoked(cursor, credential_id, epoch_id)
        except Exception as exc:
            raise_write_error(
                "verification.record_false_positive",
                exc,
                details=f"credential_id={credential_id!r} epoch_id={epoch_id}",
            )

    # ------------------------------------------------------------------
    # Batch verification
    # ------------------------------------------------------------------

    def batch_verify(self, checks: Iterable[CheckInput]) -> dict[str, VerificationOutcome]:
        """Verify many credentials with the same per-item semantics as :meth:`verify`.

        Suspect credentials share one multi-row revocation lookup and one write
        transaction.  If that shared transaction fails, each suspect falls back
        to an individual :meth:`verify` call.
        """
        started = time.perf_counter()
        validated = [_as_check(check) for check in checks]
        suspects = [check for check in validated if check.possibly_revoked]

        suspect_outcomes: list[tuple[CredentialCheck, VerificationOutcome]]
        try:
            suspect_outcomes = self._reconcile_many(suspects)
        except DatabaseError:
            logger.warning(
                "Shared batch lookup failed for %d credential(s); verifying individually",
                len(suspects),
                exc_info=True,
            )
            suspect_outcomes = [
                (check, self.verify(check.id, check.epoch, True)) for check in suspects
            ]

        resolved = iter(suspect_outcomes)
        results: dict[str, VerificationOutcome] = {}
        for check in validated:
            if check.possibly_revoked:
                _, outcome = next(resolved)
            else:
                outcome = self.verify(check.id, check.epoch, False)
            results[check.id] = outcome

        self._metrics.record(EPOCH_SENTINEL, OperationType.BATCH_VERIFY, elapsed_ms(started))
        return results

    def _reconcile_many(
        self, suspects: list[CredentialCheck]
    ) -> list[tuple[CredentialCheck, VerificationOutcome]]:
        if not suspects:
            return []
        outcomes: list[tuple[CredentialCheck, VerificationOutcome]] = []
        timings: list[tuple[int, VerificationDecision, float]] = []
        try:
            with self._store.connection_scope(write=True) as conn:
                cursor = conn.cursor()
                revoked = revocations_repo.get_revocation_times(
                    cursor,
                    (check.id for check in suspects),
                    chunk_size=self._lookup_chunk_size,
                )
                for check in suspects:
                    item_started = time.perf_counter()
                    if check.id in revoked:
                        decision = _definitive(revoked[check.id])
                    else:
                        decision = _reconcile_unrevoked(cursor, check.id, check.epoch)
                    outcomes.append((check, Resolved(decision)))
                    timings.append((check.epoch, decision, elapsed_ms(item_started)))
        except Exception as exc:
            raise_write_error("verification.batch", exc, details=f"suspects={len(suspects)}")

        # Metrics are recorded only once the shared transaction has committed.
        for epoch_id, decision, execution_time_ms in timings:
            self._record(epoch_id, decision, execution_time_ms)
        return outcomes

    # ------------------------------------------------------------------
    # False-positive statistics
    # ------------------------------------------------------------------

    def get_false_positive_stats(self) -> list[FalsePositiveEpochStats] | None:
        """Per-epoch observation counts and occurrence aggregates.

        Returns None when the store fails.
        """
        try:
            return self._read_false_positive_stats()
        except DatabaseError:
            logger.warning("Failed to read false positive statistics", exc_info=True)
            return None

    def _read_false_positive_stats(self) -> list[FalsePositiveEpochStats]:
        try:
            with self._store.connection_scope() as conn:
                return false_positives_repo.stats_by_epoch(conn.cursor())
        except Exception as exc:
            raise_read_error("false_positives.stats", exc)

    def get_false_positive_observations(self) -> list[FalsePositiveObservation]:
        try:
            with self._store.connection_scope() as conn:
                return false_positives_repo.list_observations(conn.cursor())
        except Exception as exc:
            raise_read_error("false_positives.list", exc)
