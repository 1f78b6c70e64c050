"""Vault storage backends and the document ingestion service."""

from vaultfill.vault.memory import InMemoryVaultStore
from vaultfill.vault.store import (
    AmbiguityNotFoundError,
    DocumentNotFoundError,
    StoreError,
    StoreUnavailableError,
    VaultStore,
)

__all__ = [
    "AmbiguityNotFoundError",
    "DocumentNotFoundError",
    "InMemoryVaultStore",
    "StoreError",
    "StoreUnavailableError",
    "VaultStore",
]
