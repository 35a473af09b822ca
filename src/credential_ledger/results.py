"""Result types returned by the reconciliation engine and batch processing.

Verification outcomes are a tagged union:

- :class:`Resolved`: the ledger produced a definitive decision.
- :class:`Unavailable`: the ledger could not decide (store failure); the
  caller must fall back to the external registry's own verdict.

Callers branch with ``isinstance`` instead of checking for ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from credential_ledger.db.constants import OperationType


class VerificationMethod(str, Enum):
    """How a verification decision was reached."""

    BLOOM_FILTER = OperationType.BLOOM_FILTER.value
    SQL_DEFINITIVE = OperationType.SQL_DEFINITIVE.value
    FALSE_POSITIVE_CACHE = OperationType.FALSE_POSITIVE_CACHE.value
    NEW_FALSE_POSITIVE = OperationType.NEW_FALSE_POSITIVE.value

    @property
    def detects_false_positive(self) -> bool:
        return self in (
            VerificationMethod.FALSE_POSITIVE_CACHE,
            VerificationMethod.NEW_FALSE_POSITIVE,
        )


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True, slots=True)
class VerificationDecision:
    """
    Definitive answer for one credential.

    Attributes:
        valid: False only when a confirmed revocation exists.
        method: Decision path taken.
        checked_at: ISO-8601 UTC time of the decision.
        revocation_time: Ledger timestamp of the revocation (``sql-definitive``).
        occurrences: Observation count after this call (``false-positive-cache``).
    """

    valid: bool
    method: VerificationMethod
    checked_at: str
    revocation_time: str | None = None
    occurrences: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping for adapter callers; optional fields only when set."""
        payload: dict[str, Any] = {
            "valid": self.valid,
            "method": self.method.value,
            "checked_at": self.checked_at,
        }
        if self.revocation_time is not None:
            payload["revocation_time"] = self.revocation_time
        if self.occurrences is not None:
            payload["occurrences"] = self.occurrences
        return payload


@dataclass(frozen=True, slots=True)
class Resolved:
    decision: VerificationDecision


@dataclass(frozen=True, slots=True)
class Unavailable:
    reason: str


VerificationOutcome = Resolved | Unavailable


@dataclass(frozen=True, slots=True)
class BatchProcessResult:
    """
    Structured outcome of ``process_batch``; failures are data, not exceptions.

    Attributes:
        success: True when every item is recorded and the batch is processed.
        item_count: Items recorded (0 on failure).
        execution_time_ms: Wall time spent in the call.
        error: Failure description when ``success`` is False.
    """

    success: bool
    item_count: int = 0
    execution_time_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.success:
            payload["item_count"] = self.item_count
        else:
            payload["error"] = self.error
        return payload
