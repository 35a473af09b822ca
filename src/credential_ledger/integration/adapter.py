"""Adapter between an external credential registry and the ledger.

The external registry (blockchain accumulator plus membership filter) stays
the source of truth.  ``RegistryAdapter`` asks it first and then lets the
ledger sharpen the answer:

- ``verify_credential``: registry verdict → ledger reconciliation.  A
  ``Resolved`` outcome is returned with ``optimized: True``; anything else
  returns the registry's own result unmodified.  The adapter is never less
  correct than calling the registry directly.
- ``revoke_credential``: registry commit → ledger record.  A ledger failure,
  including a closed ledger, is logged and reported as ``optimized: False``;
  the revocation itself has already happened.

Registry methods may be plain functions or coroutines; awaitable results are
awaited.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from credential_ledger.db.types import FalsePositiveEpochStats, RevocationStats
from credential_ledger.facade import CredentialLedger
from credential_ledger.results import Resolved, utc_now_iso

logger = logging.getLogger(__name__)

RegistryResult = Mapping[str, Any]


@runtime_checkable
class CredentialRegistry(Protocol):
    """The two external operations the ledger reconciles against.

    ``verify_credential`` returns a mapping with ``valid`` (False means
    "possibly revoked").  ``revoke_credential`` returns a mapping that may
    carry ``epoch_id`` and ``prime_value`` for the committed revocation.
    """

    def verify_credential(
        self, credential_id: str, epoch_id: int
    ) -> RegistryResult | Awaitable[RegistryResult]: ...

    def revoke_credential(
        self, credential_id: str, issuer_id: str
    ) -> RegistryResult | Awaitable[RegistryResult]: ...


async def _resolve(value: RegistryResult | Awaitable[RegistryResult]) -> RegistryResult:
    if inspect.isawaitable(value):
        return await value
    return value


class RegistryAdapter:
    """Drop-in registry front end with ledger-backed verification.

    Args:
        registry: External registry implementation.
        ledger: Open credential ledger.
        default_epoch_id: Epoch recorded when a revocation result has none;
            defaults to ``ledger.settings.integration.default_epoch_id``.
        verify_chunk_size: Concurrent registry calls per chunk in
            :meth:`batch_verify_credentials`.
    """

    def __init__(
        self,
        registry: CredentialRegistry,
        ledger: CredentialLedger,
        *,
        default_epoch_id: int | None = None,
        verify_chunk_size: int | None = None,
    ) -> None:
        integration = ledger.settings.integration
        self.registry = registry
        self.ledger = ledger
        self.default_epoch_id = (
            integration.default_epoch_id if default_epoch_id is None else default_epoch_id
        )
        self.verify_chunk_size = max(
            integration.verify_chunk_size if verify_chunk_size is None else verify_chunk_size,
            1,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_credential(self, credential_id: str, epoch_id: int) -> RegistryResult:
        """Verify through the registry, then reconcile with the ledger.

        Exceptions raised by the registry itself propagate: without its verdict
        there is nothing to reconcile.
        """
        external = await _resolve(self.registry.verify_credential(credential_id, epoch_id))
        try:
            outcome = self.ledger.verify(credential_id, epoch_id, not external["valid"])
        except Exception:
            logger.exception(
                "Ledger reconciliation failed for credential %s; using registry verdict",
                credential_id,
            )
            return external

        if isinstance(outcome, Resolved):
            return {**outcome.decision.to_dict(), "optimized": True}
        logger.info(
            "Ledger unavailable for credential %s (%s); using registry verdict",
            credential_id,
            outcome.reason,
        )
        return external

    async def batch_verify_credentials(
        self, credentials: Iterable[Mapping[str, Any]]
    ) -> dict[str, RegistryResult]:
        """Verify many ``{"id", "epoch"}`` entries.

        Registry verdicts are gathered concurrently, ``verify_chunk_size`` at a
        time.  Credentials whose registry call fails are logged and left out
        of the result.
        """
        entries = list(credentials)
        externals: dict[str, RegistryResult] = {}
        checks: list[dict[str, Any]] = []

        for start in range(0, len(entries), self.verify_chunk_size):
            chunk = entries[start : start + self.verify_chunk_size]
            verdicts = await asyncio.gather(
                *(
                    _resolve(self.registry.verify_credential(entry["id"], entry["epoch"]))
                    for entry in chunk
                ),
                return_exceptions=True,
            )
            for entry, verdict in zip(chunk, verdicts, strict=True):
                if isinstance(verdict, BaseException):
                    logger.warning(
                        "Registry verification failed for credential %s; omitting it",
                        entry["id"],
                        exc_info=verdict,
                    )
                    continue
                externals[entry["id"]] = verdict
                checks.append(
                    {
                        "id": entry["id"],
                        "epoch": entry["epoch"],
                        "possibly_revoked": not verdict["valid"],
                    }
                )

        try:
            outcomes = self.ledger.batch_verify(checks)
        except Exception:
            logger.exception("Ledger batch reconciliation failed; using registry verdicts")
            return externals

        results: dict[str, RegistryResult] = {}
        for credential_id, external in externals.items():
            outcome = outcomes.get(credential_id)
            if isinstance(outcome, Resolved):
                results[credential_id] = {**outcome.decision.to_dict(), "optimized": True}
            else:
                results[credential_id] = external
        return results

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    async def revoke_credential(self, credential_id: str, issuer_id: str) -> RegistryResult:
        """Commit through the registry, then record the fact in the ledger."""
        external = await _resolve(self.registry.revoke_credential(credential_id, issuer_id))
        epoch_id = external.get("epoch_id")
        try:
            recorded = self.ledger.record_revocation(
                {
                    "credential_id": credential_id,
                    "issuer_id": issuer_id,
                    "epoch_id": self.default_epoch_id if epoch_id is None else epoch_id,
                    "prime_value": str(external.get("prime_value") or ""),
                }
            )
        except Exception:
            logger.exception("Ledger record failed for revoked credential %s", credential_id)
            recorded = False
        if not recorded:
            logger.warning(
                "Credential %s revoked externally but not recorded in the ledger", credential_id
            )
        return {**external, "optimized": recorded}

    def create_revocation_batch(self) -> dict[str, Any]:
        """Allocate a ledger batch; ``batch_id`` is None when the ledger fails."""
        batch_id = self.ledger.create_batch()
        if batch_id is None:
            return {"batch_id": None, "created_at": None}
        return {"batch_id": batch_id, "created_at": utc_now_iso()}

    def add_to_batch(self, batch_id: int, items: Iterable[Mapping[str, Any]]) -> bool:
        return self.ledger.add_to_batch(batch_id, items)

    def process_batch(self, batch_id: int) -> dict[str, Any]:
        return self.ledger.process_batch(batch_id).to_dict()

    def get_false_positive_stats(self) -> list[FalsePositiveEpochStats] | None:
        return self.ledger.get_false_positive_stats()

    def get_revocation_stats(self) -> RevocationStats | None:
        return self.ledger.get_revocation_stats()
