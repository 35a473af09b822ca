"""External registry integration."""

from credential_ledger.integration.adapter import CredentialRegistry, RegistryAdapter

__all__ = ["CredentialRegistry", "RegistryAdapter"]
