"""Ledger services.

Modules
-------
revocation_service.py     RevocationLedgerService  revocations and batches
verification_service.py   ReconciliationEngine     filter verdict → decision
false_positive_guard.py   FalsePositiveGuard       stateless FP analysis
metrics.py                MetricsRecorder          buffered operation metrics
"""

from credential_ledger.services.false_positive_guard import (
    FalsePositiveAnalysis,
    FalsePositiveGuard,
)
from credential_ledger.services.metrics import MetricsRecorder
from credential_ledger.services.revocation_service import RevocationLedgerService
from credential_ledger.services.verification_service import ReconciliationEngine

__all__ = [
    "FalsePositiveAnalysis",
    "FalsePositiveGuard",
    "MetricsRecorder",
    "ReconciliationEngine",
    "RevocationLedgerService",
]
