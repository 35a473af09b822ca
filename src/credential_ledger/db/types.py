"""Shared DB-layer dataclasses for repository contracts."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class RevocationRecord:
    """
    Definitive fact that a credential is revoked.

    Attributes:
        credential_id: Unique credential identifier.
        revoked_at: Store timestamp of the first recording.
        epoch_id: Epoch under which the revocation was committed externally.
        issuer_id: Issuer that revoked the credential.
        prime_value: Decimal string of the credential's accumulator prime.
    """

    credential_id: str
    revoked_at: str
    epoch_id: int
    issuer_id: str
    prime_value: str


@dataclass(slots=True)
class FalsePositiveObservation:
    """
    Learned filter discrepancy for one credential at one epoch.

    Attributes:
        credential_id: Credential the filter flagged.
        epoch_id: Epoch of the flagged check.
        first_observed_at: Store timestamp of the first observation.
        occurrence_count: Number of times the discrepancy was seen (>= 1).
    """

    credential_id: str
    epoch_id: int
    first_observed_at: str
    occurrence_count: int


@dataclass(slots=True)
class RevocationBatch:
    """Unit of bulk revocation work."""

    batch_id: int
    created_at: str
    processed_at: str | None
    item_count: int
    status: str


@dataclass(slots=True)
class RevocationBatchItem:
    """One queued revocation inside a batch."""

    item_id: int
    batch_id: int
    credential_id: str
    prime_value: str
    epoch_id: int
    issuer_id: str
    status: str


@dataclass(slots=True)
class OperationMetric:
    """Append-only observability row; ``id``/``timestamp`` are store-assigned."""

    epoch_id: int
    operation_type: str
    execution_time_ms: float
    false_positive_detected: bool = False


@dataclass(slots=True)
class EpochRevocationCount:
    """Number of confirmed revocations recorded under one epoch."""

    epoch_id: int
    count: int


@dataclass(slots=True)
class BatchStats:
    """
    Aggregate view over all revocation batches.

    Attributes:
        total_batches: Number of batches ever created.
        pending_batches: Batches not yet processed.
        processed_batches: Batches whose items are all recorded.
        total_items: Sum of ``item_count`` across batches.
        avg_batch_size: Mean ``item_count``; ``0.0`` when there are no batches.
    """

    total_batches: int = 0
    pending_batches: int = 0
    processed_batches: int = 0
    total_items: int = 0
    avg_batch_size: float = 0.0


@dataclass(slots=True)
class OperationPerformance:
    """Timing aggregate for one operation type."""

    operation_type: str
    operation_count: int
    avg_execution_time_ms: float
    min_execution_time_ms: float
    max_execution_time_ms: float
    false_positive_count: int


@dataclass(slots=True)
class RevocationStats:
    """Read-only snapshot returned by ``get_revocation_stats``."""

    total_revocations: int
    revocations_by_epoch: list[EpochRevocationCount] = field(default_factory=list)
    batch_stats: BatchStats = field(default_factory=BatchStats)
    performance_metrics: list[OperationPerformance] = field(default_factory=list)


@dataclass(slots=True)
class FalsePositiveEpochStats:
    """Per-epoch false-positive summary used to tune the upstream filter."""

    epoch_id: int
    total_false_positives: int
    avg_occurrences: float
    max_occurrences: int
