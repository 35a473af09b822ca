"""Credential Ledger: exact revocation answers behind a probabilistic filter.

A membership filter in front of a cryptographic accumulator can say "possibly
revoked" for credentials that were never revoked.  This package keeps a local
SQLite ledger of confirmed revocations and learned false positives so that the
expensive external check never has to be repeated once the answer is known.

Public surface
--------------
- :class:`CredentialLedger`: composition root owning the store and services.
- :class:`RegistryAdapter`: wraps an external credential registry.
- :class:`Resolved` / :class:`Unavailable`: verification outcomes.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from credential_ledger.facade import CredentialLedger
from credential_ledger.integration.adapter import CredentialRegistry, RegistryAdapter
from credential_ledger.results import (
    BatchProcessResult,
    Resolved,
    Unavailable,
    VerificationDecision,
    VerificationMethod,
)

try:
    __version__: str = version("credential-ledger")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "BatchProcessResult",
    "CredentialLedger",
    "CredentialRegistry",
    "RegistryAdapter",
    "Resolved",
    "Unavailable",
    "VerificationDecision",
    "VerificationMethod",
    "__version__",
]
