"""Abstract vault store.

The resolution core treats the vault as a queryable key-value store with
provenance. Implementations: InMemoryVaultStore (tests, demos) and
SqlVaultStore (PostgreSQL via SQLAlchemy async).

Every method speaks the frozen records from vaultfill.schemas.vault.
Failures surface as StoreError so callers can tell a store outage apart
from a programming error.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.schemas.vault import (
    AmbiguityCandidate,
    LearnedFieldRecord,
    VaultAmbiguityRecord,
    VaultDocumentRecord,
    VaultFieldRecord,
    VaultSectionRecord,
)


class StoreError(Exception):
    """Raised when the vault store cannot answer a query."""


class StoreUnavailableError(StoreError):
    """Raised when no query against the store could be completed."""


class DocumentNotFoundError(StoreError):
    """Raised when a document id does not exist."""


class AmbiguityNotFoundError(StoreError):
    """Raised when an ambiguity id does not exist (or belongs to another user)."""


class VaultStore(ABC):
    """Interface every vault backend implements."""

    # ── Documents ────────────────────────────────────────────────────

    @abstractmethod
    async def add_document(self, document: VaultDocumentRecord) -> VaultDocumentRecord:
        """Persist a new document record."""

    @abstractmethod
    async def get_document(self, document_id: uuid.UUID) -> VaultDocumentRecord | None:
        """Fetch a document by id."""

    @abstractmethod
    async def update_document(
        self,
        document_id: uuid.UUID,
        *,
        status: DocumentStatus,
        confidence: float | None = None,
        extracted_fields_count: int | None = None,
        processing_error: str | None = None,
    ) -> VaultDocumentRecord:
        """Move a document to a new status. Raises DocumentNotFoundError."""

    @abstractmethod
    async def has_completed_document(self, user_id: uuid.UUID, document_type: DocumentType) -> bool:
        """Whether the user owns a COMPLETED document of this type."""

    @abstractmethod
    async def completed_document_types(self, user_id: uuid.UUID) -> set[DocumentType]:
        """Every document type with a COMPLETED document for the user."""

    # ── Sections ─────────────────────────────────────────────────────

    @abstractmethod
    async def get_or_create_section(self, user_id: uuid.UUID, section_type: SectionType) -> VaultSectionRecord:
        """Return the user's section of this type, creating it if needed."""

    @abstractmethod
    async def list_sections(self, user_id: uuid.UUID) -> list[VaultSectionRecord]:
        """All sections of a user."""

    # ── Fields ───────────────────────────────────────────────────────

    @abstractmethod
    async def add_fields(self, fields: Iterable[VaultFieldRecord]) -> list[VaultFieldRecord]:
        """Insert field records."""

    @abstractmethod
    async def replace_field(self, field: VaultFieldRecord) -> VaultFieldRecord:
        """Overwrite value/confidence/source of an existing field (explicit edits only)."""

    @abstractmethod
    async def find_fields(
        self,
        user_id: uuid.UUID,
        *,
        source: DocumentType | None = None,
        section_id: uuid.UUID | None = None,
        field_name: str | None = None,
        min_confidence: float = 0.0,
        limit: int | None = None,
    ) -> list[VaultFieldRecord]:
        """Fields of one user, newest first, optionally narrowed.

        `field_name` is an exact, case-insensitive match.
        """

    # ── Ambiguities ──────────────────────────────────────────────────

    @abstractmethod
    async def upsert_ambiguity(
        self,
        user_id: uuid.UUID,
        field_name: str,
        candidates: list[AmbiguityCandidate],
    ) -> VaultAmbiguityRecord:
        """Create the (user, field_name) ambiguity or reset it to PENDING with new candidates."""

    @abstractmethod
    async def list_ambiguities(
        self, user_id: uuid.UUID, status: AmbiguityStatus = AmbiguityStatus.PENDING
    ) -> list[VaultAmbiguityRecord]:
        """Ambiguities of a user in a given state."""

    @abstractmethod
    async def set_ambiguity_status(
        self,
        ambiguity_id: uuid.UUID,
        status: AmbiguityStatus,
        *,
        resolved_value: str | None = None,
        notes: str | None = None,
    ) -> VaultAmbiguityRecord:
        """Mark an ambiguity resolved or ignored. Raises AmbiguityNotFoundError."""

    @abstractmethod
    async def get_ambiguity(self, ambiguity_id: uuid.UUID) -> VaultAmbiguityRecord | None:
        """Fetch an ambiguity by id."""

    # ── Learning ─────────────────────────────────────────────────────

    @abstractmethod
    async def record_usage(
        self, user_id: uuid.UUID, field_name: str, value: str, context: str
    ) -> LearnedFieldRecord:
        """Increment usage of a field and the frequency of the value used."""

    @abstractmethod
    async def list_learned_fields(self, user_id: uuid.UUID, limit: int = 50) -> list[LearnedFieldRecord]:
        """Learned fields of a user, most used first."""

    @abstractmethod
    async def get_learned_field(self, user_id: uuid.UUID, field_name: str) -> LearnedFieldRecord | None:
        """Usage statistics for one field."""
