"""Stateless false-positive reasoning for the membership filter.

The guard never touches the ledger; it works on values handed to it and is used
for operator reporting only, never for verification decisions.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from credential_ledger.db.types import FalsePositiveObservation

DEFAULT_EXPECTED_RATE = 0.01
DEFAULT_PROBLEMATIC_THRESHOLD = 100

NO_ISSUES_RECOMMENDATION = "No unusual false positive patterns detected"


@dataclass(frozen=True, slots=True)
class FalsePositiveAnalysis:
    """
    Summary of observed false positives.

    Attributes:
        total: Number of observations analysed.
        counts_by_epoch: Observation count per epoch.
        problematic_epochs: Epochs above the threshold, ascending.
        recommendation: Human-readable tuning advice.
    """

    total: int
    counts_by_epoch: dict[int, int] = field(default_factory=dict)
    problematic_epochs: list[int] = field(default_factory=list)
    recommendation: str = NO_ISSUES_RECOMMENDATION


class FalsePositiveGuard:
    """Probability estimate and pattern analysis for filter false positives.

    Args:
        expected_rate: Configured filter false-positive rate.
        problematic_threshold: Observations per epoch above which the epoch is
            flagged for filter re-tuning.
    """

    def __init__(
        self,
        *,
        expected_rate: float = DEFAULT_EXPECTED_RATE,
        problematic_threshold: int = DEFAULT_PROBLEMATIC_THRESHOLD,
    ) -> None:
        self.expected_rate = expected_rate
        self.problematic_threshold = problematic_threshold

    def estimate_false_positive_probability(
        self,
        credential_id: str,
        epoch_stats: Mapping[str, Any] | None = None,
    ) -> float:
        """Probability that a "possibly revoked" verdict is a false positive.

        Currently the configured rate regardless of credential or epoch; the
        arguments are the inputs a sharper model would need.
        """
        return min(max(self.expected_rate, 0.0), 1.0)

    def analyze(self, observations: Iterable[FalsePositiveObservation]) -> FalsePositiveAnalysis:
        """Group observations by epoch and flag epochs above the threshold."""
        counts = Counter(observation.epoch_id for observation in observations)
        problematic = sorted(
            epoch_id for epoch_id, count in counts.items() if count > self.problematic_threshold
        )
        if problematic:
            epochs = ", ".join(str(epoch_id) for epoch_id in problematic)
            recommendation = (
                f"Consider tuning membership filter parameters for epochs: {epochs}"
            )
        else:
            recommendation = NO_ISSUES_RECOMMENDATION
        return FalsePositiveAnalysis(
            total=sum(counts.values()),
            counts_by_epoch=dict(sorted(counts.items())),
            problematic_epochs=problematic,
            recommendation=recommendation,
        )
