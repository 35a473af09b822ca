"""Tests for RegistryAdapter against in-memory registries.

The fake registries stand in for the blockchain-backed accumulator: they keep
a revoked set, answer ``valid`` from it, and can be told to flag extra
credentials (filter false positives) or to fail.
"""

from __future__ import annotations

import sqlite3

import pytest

from credential_ledger import CredentialRegistry, RegistryAdapter
from credential_ledger.db import batches_repo, revocations_repo
from credential_ledger.db.constants import EPOCH_SENTINEL
from credential_ledger.results import Unavailable


class FakeRegistry:
    """Synchronous registry double."""

    def __init__(self, *, epoch_id: int | None = 5, prime_value: str | None = "1009") -> None:
        self.revoked: set[str] = set()
        self.flagged: set[str] = set()
        self.failing: set[str] = set()
        self.epoch_id = epoch_id
        self.prime_value = prime_value
        self.verify_calls = 0

    def verify_credential(self, credential_id: str, epoch_id: int) -> dict:
        self.verify_calls += 1
        if credential_id in self.failing:
            raise ConnectionError(f"registry unreachable for {credential_id}")
        possibly_revoked = credential_id in self.revoked or credential_id in self.flagged
        return {"valid": not possibly_revoked, "source": "registry"}

    def revoke_credential(self, credential_id: str, issuer_id: str) -> dict:
        self.revoked.add(credential_id)
        result: dict = {"credential_id": credential_id, "tx": "0xabc"}
        if self.epoch_id is not None:
            result["epoch_id"] = self.epoch_id
        if self.prime_value is not None:
            result["prime_value"] = self.prime_value
        return result


class AsyncFakeRegistry(FakeRegistry):
    """Coroutine-based registry double."""

    async def verify_credential(self, credential_id: str, epoch_id: int) -> dict:
        return FakeRegistry.verify_credential(self, credential_id, epoch_id)

    async def revoke_credential(self, credential_id: str, issuer_id: str) -> dict:
        return FakeRegistry.revoke_credential(self, credential_id, issuer_id)


@pytest.fixture(params=[FakeRegistry, AsyncFakeRegistry], ids=["sync", "async"])
def registry(request) -> FakeRegistry:
    return request.param()


@pytest.fixture
def adapter(registry, ledger) -> RegistryAdapter:
    return RegistryAdapter(registry, ledger)


@pytest.mark.unit
def test_fake_registries_satisfy_protocol():
    assert isinstance(FakeRegistry(), CredentialRegistry)
    assert isinstance(AsyncFakeRegistry(), CredentialRegistry)


# ============================================================================
# VERIFY
# ============================================================================


@pytest.mark.integration
@pytest.mark.db
class TestVerifyCredential:
    @pytest.mark.asyncio
    async def test_clean_credential_uses_fast_path(self, adapter):
        result = await adapter.verify_credential("c1", 1)

        assert result["valid"] is True
        assert result["method"] == "bloom-filter"
        assert result["optimized"] is True

    @pytest.mark.asyncio
    async def test_false_positive_is_learned(self, adapter, registry):
        registry.flagged.add("fp")

        first = await adapter.verify_credential("fp", 1)
        second = await adapter.verify_credential("fp", 1)

        assert first["method"] == "new-false-positive"
        assert first["valid"] is True
        assert second["method"] == "false-positive-cache"
        assert second["occurrences"] == 2

    @pytest.mark.asyncio
    async def test_revoked_credential_is_definitive(self, adapter):
        await adapter.revoke_credential("c1", "issuer-1")

        result = await adapter.verify_credential("c1", 5)

        assert result["valid"] is False
        assert result["method"] == "sql-definitive"
        assert result["optimized"] is True
        assert "revocation_time" in result

    @pytest.mark.asyncio
    async def test_unavailable_ledger_returns_registry_verdict(
        self, adapter, registry, ledger, monkeypatch
    ):
        registry.flagged.add("c1")
        monkeypatch.setattr(ledger, "verify", lambda *args: Unavailable("store down"))

        result = await adapter.verify_credential("c1", 1)

        assert result == {"valid": False, "source": "registry"}

    @pytest.mark.asyncio
    async def test_ledger_exception_returns_registry_verdict(
        self, adapter, registry, ledger, monkeypatch
    ):
        def explode(*args):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(ledger, "verify", explode)

        result = await adapter.verify_credential("c1", 1)

        assert result == {"valid": True, "source": "registry"}

    @pytest.mark.asyncio
    async def test_registry_failure_propagates(self, adapter, registry):
        registry.failing.add("c1")

        with pytest.raises(ConnectionError):
            await adapter.verify_credential("c1", 1)


# ============================================================================
# BATCH VERIFY
# ============================================================================


@pytest.mark.integration
@pytest.mark.db
class TestBatchVerifyCredentials:
    @pytest.mark.asyncio
    async def test_mixed_batch(self, registry, ledger):
        adapter = RegistryAdapter(registry, ledger, verify_chunk_size=2)
        await adapter.revoke_credential("revoked", "issuer-1")
        registry.flagged.add("fp")

        results = await adapter.batch_verify_credentials(
            [
                {"id": "clean", "epoch": 1},
                {"id": "revoked", "epoch": 1},
                {"id": "fp", "epoch": 1},
            ]
        )

        assert results["clean"]["method"] == "bloom-filter"
        assert results["revoked"]["method"] == "sql-definitive"
        assert results["fp"]["method"] == "new-false-positive"
        assert all(result["optimized"] for result in results.values())
        assert registry.verify_calls == 3

    @pytest.mark.asyncio
    async def test_registry_failures_are_omitted(self, adapter, registry):
        registry.failing.add("down")

        results = await adapter.batch_verify_credentials(
            [{"id": "down", "epoch": 1}, {"id": "up", "epoch": 1}]
        )

        assert list(results) == ["up"]

    @pytest.mark.asyncio
    async def test_ledger_failure_returns_registry_verdicts(
        self, adapter, registry, ledger, monkeypatch
    ):
        def explode(checks):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(ledger, "batch_verify", explode)

        results = await adapter.batch_verify_credentials([{"id": "a", "epoch": 1}])

        assert results == {"a": {"valid": True, "source": "registry"}}

    @pytest.mark.asyncio
    async def test_unavailable_entries_fall_back_individually(self, adapter, registry, ledger):
        registry.flagged.add("suspect")
        ledger.store.close()

        results = await adapter.batch_verify_credentials(
            [{"id": "clean", "epoch": 1}, {"id": "suspect", "epoch": 1}]
        )

        assert results["clean"]["optimized"] is True
        assert results["suspect"] == {"valid": False, "source": "registry"}


# ============================================================================
# REVOKE
# ============================================================================


@pytest.mark.integration
@pytest.mark.db
class TestRevokeCredential:
    @pytest.mark.asyncio
    async def test_records_external_metadata(self, adapter, ledger):
        result = await adapter.revoke_credential("c1", "issuer-9")

        assert result["tx"] == "0xabc"
        assert result["optimized"] is True
        with ledger.store.connection_scope() as conn:
            record = revocations_repo.get_revocation(conn.cursor(), "c1")
        assert record.epoch_id == 5
        assert record.issuer_id == "issuer-9"
        assert record.prime_value == "1009"

    @pytest.mark.asyncio
    async def test_missing_metadata_uses_defaults(self, ledger):
        registry = FakeRegistry(epoch_id=None, prime_value=None)
        adapter = RegistryAdapter(registry, ledger)

        result = await adapter.revoke_credential("c1", "issuer-1")

        assert result["optimized"] is True
        with ledger.store.connection_scope() as conn:
            record = revocations_repo.get_revocation(conn.cursor(), "c1")
        assert record.epoch_id == EPOCH_SENTINEL
        assert record.prime_value == ""

    @pytest.mark.asyncio
    async def test_configured_default_epoch(self, ledger):
        adapter = RegistryAdapter(FakeRegistry(epoch_id=None), ledger, default_epoch_id=42)

        await adapter.revoke_credential("c1", "issuer-1")

        with ledger.store.connection_scope() as conn:
            assert revocations_repo.get_revocation(conn.cursor(), "c1").epoch_id == 42

    @pytest.mark.asyncio
    async def test_ledger_failure_still_returns_external_result(self, adapter, ledger, registry):
        ledger.store.close()

        result = await adapter.revoke_credential("c1", "issuer-1")

        assert result["tx"] == "0xabc"
        assert result["optimized"] is False
        assert "c1" in registry.revoked

    @pytest.mark.asyncio
    async def test_closed_ledger_still_returns_external_result(self, adapter, ledger, registry):
        ledger.close()

        result = await adapter.revoke_credential("c1", "issuer-1")

        assert result["tx"] == "0xabc"
        assert result["optimized"] is False
        assert "c1" in registry.revoked

    @pytest.mark.asyncio
    @pytest.mark.parametrize("registry_class", [FakeRegistry, AsyncFakeRegistry])
    async def test_non_decimal_prime_value_is_recorded(self, ledger, registry_class):
        registry = registry_class(prime_value="C1-prime-value")
        adapter = RegistryAdapter(registry, ledger)

        revoked = await adapter.revoke_credential("c1", "issuer-1")
        verified = await adapter.verify_credential("c1", 5)

        assert revoked["optimized"] is True
        assert verified["valid"] is False
        assert verified["method"] == "sql-definitive"
        with ledger.store.connection_scope() as conn:
            record = revocations_repo.get_revocation(conn.cursor(), "c1")
        assert record.prime_value == "C1-prime-value"


# ============================================================================
# BATCH PASS-THROUGHS
# ============================================================================


@pytest.mark.integration
@pytest.mark.db
def test_batch_pass_throughs(adapter):
    created = adapter.create_revocation_batch()
    batch_id = created["batch_id"]
    assert created["created_at"]

    assert adapter.add_to_batch(
        batch_id,
        [
            {"credential_id": "a", "epoch_id": 1, "issuer_id": "i", "prime_value": "3"},
            {"credential_id": "b", "epoch_id": 2, "issuer_id": "i", "prime_value": "5"},
        ],
    )
    result = adapter.process_batch(batch_id)

    assert result["success"] is True
    assert result["item_count"] == 2
    assert adapter.get_revocation_stats().total_revocations == 2
    assert adapter.get_false_positive_stats() == []


@pytest.mark.integration
@pytest.mark.db
def test_failed_batch_creation_returns_empty_payload(adapter, monkeypatch):
    def fail(cursor):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(batches_repo, "insert_batch", fail)

    assert adapter.create_revocation_batch() == {"batch_id": None, "created_at": None}


@pytest.mark.integration
@pytest.mark.db
def test_stats_degrade_when_store_fails(adapter, ledger):
    ledger.store.close()

    assert adapter.get_revocation_stats() is None
    assert adapter.get_false_positive_stats() is None
