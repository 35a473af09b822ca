"""
Shared pytest fixtures for the credential ledger test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary ledger database files wired through the config system
- Opened ``LedgerStore`` / ``CredentialLedger`` instances
- Sample revocation payloads shaped like external registry results

Every fixture is function scoped so each test starts from an empty ledger.
"""

import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from credential_ledger.config import use_test_database
from credential_ledger.db.connection import LedgerStore
from credential_ledger.facade import CredentialLedger

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary ledger database path for testing.

    Uses the config system's use_test_database context manager so that
    ``CredentialLedger()`` built without arguments lands in the temp file.

    Yields:
        Path to temporary database file

    Cleanup:
        Removes the temporary directory after the test completes
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_ledger.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def store(temp_db_path: Path) -> Generator[LedgerStore, None, None]:
    """Open store with the full schema and no data."""
    ledger_store = LedgerStore(temp_db_path).open()
    yield ledger_store
    ledger_store.close()


@pytest.fixture(scope="function")
def ledger(temp_db_path: Path) -> Generator[CredentialLedger, None, None]:
    """Open credential ledger backed by the temporary database."""
    with CredentialLedger() as opened:
        yield opened


# ============================================================================
# SAMPLE DATA
# ============================================================================


def make_revocation(
    credential_id: str = "cred-1",
    epoch_id: int = 5,
    issuer_id: str = "issuer-1",
    prime_value: str = "1009",
) -> dict:
    """Revocation payload as reported by the external registry."""
    return {
        "credential_id": credential_id,
        "epoch_id": epoch_id,
        "issuer_id": issuer_id,
        "prime_value": prime_value,
    }


@pytest.fixture
def revocation_factory():
    """Expose :func:`make_revocation` to tests without importing conftest."""
    return make_revocation
