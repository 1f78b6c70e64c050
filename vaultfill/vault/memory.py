"""In-memory vault store.

Keeps everything in dicts keyed by id. Data is lost on restart; used for
tests, demos, and the default development backend. Records are frozen
pydantic models, so returning them directly is safe.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.schemas.vault import (
    AmbiguityCandidate,
    LearnedFieldRecord,
    LearnedValue,
    VaultAmbiguityRecord,
    VaultDocumentRecord,
    VaultFieldRecord,
    VaultSectionRecord,
)
from vaultfill.vault.store import AmbiguityNotFoundError, DocumentNotFoundError, StoreError, VaultStore

logger = logging.getLogger(__name__)


class InMemoryVaultStore(VaultStore):
    """Dict-backed VaultStore."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, VaultDocumentRecord] = {}
        self._sections: dict[tuple[uuid.UUID, SectionType], VaultSectionRecord] = {}
        self._fields: dict[uuid.UUID, VaultFieldRecord] = {}
        self._ambiguities: dict[uuid.UUID, VaultAmbiguityRecord] = {}
        self._learned: dict[tuple[uuid.UUID, str], LearnedFieldRecord] = {}

    # ── Documents ────────────────────────────────────────────────────

    async def add_document(self, document: VaultDocumentRecord) -> VaultDocumentRecord:
        if document.id in self._documents:
            raise StoreError(f"Document {document.id} already exists")
        self._documents[document.id] = document
        return document

    async def get_document(self, document_id: uuid.UUID) -> VaultDocumentRecord | None:
        return self._documents.get(document_id)

    async def update_document(
        self,
        document_id: uuid.UUID,
        *,
        status: DocumentStatus,
        confidence: float | None = None,
        extracted_fields_count: int | None = None,
        processing_error: str | None = None,
    ) -> VaultDocumentRecord:
        existing = self._documents.get(document_id)
        if existing is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        updates: dict[str, object] = {"status": status}
        if confidence is not None:
            updates["confidence"] = confidence
        if extracted_fields_count is not None:
            updates["extracted_fields_count"] = extracted_fields_count
        if processing_error is not None:
            updates["processing_error"] = processing_error

        # model_copy skips validation, so re-validate to normalize confidence
        updated = VaultDocumentRecord.model_validate({**existing.model_dump(), **updates})
        self._documents[document_id] = updated
        return updated

    async def has_completed_document(self, user_id: uuid.UUID, document_type: DocumentType) -> bool:
        return any(
            doc.user_id == user_id and doc.document_type == document_type and doc.is_completed
            for doc in self._documents.values()
        )

    async def completed_document_types(self, user_id: uuid.UUID) -> set[DocumentType]:
        return {doc.document_type for doc in self._documents.values() if doc.user_id == user_id and doc.is_completed}

    # ── Sections ─────────────────────────────────────────────────────

    async def get_or_create_section(self, user_id: uuid.UUID, section_type: SectionType) -> VaultSectionRecord:
        key = (user_id, section_type)
        section = self._sections.get(key)
        if section is None:
            section = VaultSectionRecord(user_id=user_id, section_type=section_type)
            self._sections[key] = section
        return section

    async def list_sections(self, user_id: uuid.UUID) -> list[VaultSectionRecord]:
        return [s for (owner, _), s in self._sections.items() if owner == user_id]

    # ── Fields ───────────────────────────────────────────────────────

    async def add_fields(self, fields: Iterable[VaultFieldRecord]) -> list[VaultFieldRecord]:
        saved = []
        for f in fields:
            self._fields[f.id] = f
            saved.append(f)
        return saved

    async def replace_field(self, field: VaultFieldRecord) -> VaultFieldRecord:
        if field.id not in self._fields:
            raise StoreError(f"Field {field.id} not found")
        self._fields[field.id] = field
        return field

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
        wanted_name = field_name.lower() if field_name is not None else None
        matches = [
            f
            for f in self._fields.values()
            if f.user_id == user_id
            and (source is None or f.extracted_from == source)
            and (section_id is None or f.section_id == section_id)
            and (wanted_name is None or f.field_name.lower() == wanted_name)
            and f.confidence >= min_confidence
        ]
        matches.sort(key=lambda f: f.created_at, reverse=True)
        return matches[:limit] if limit is not None else matches

    # ── Ambiguities ──────────────────────────────────────────────────

    async def upsert_ambiguity(
        self,
        user_id: uuid.UUID,
        field_name: str,
        candidates: list[AmbiguityCandidate],
    ) -> VaultAmbiguityRecord:
        for existing in self._ambiguities.values():
            if existing.user_id == user_id and existing.field_name == field_name:
                updated = existing.model_copy(update={
                    "candidates": list(candidates),
                    "resolution_status": AmbiguityStatus.PENDING,
                    "updated_at": datetime.now(UTC),
                })
                self._ambiguities[existing.id] = updated
                return updated

        record = VaultAmbiguityRecord(user_id=user_id, field_name=field_name, candidates=list(candidates))
        self._ambiguities[record.id] = record
        return record

    async def list_ambiguities(
        self, user_id: uuid.UUID, status: AmbiguityStatus = AmbiguityStatus.PENDING
    ) -> list[VaultAmbiguityRecord]:
        return [a for a in self._ambiguities.values() if a.user_id == user_id and a.resolution_status == status]

    async def set_ambiguity_status(
        self,
        ambiguity_id: uuid.UUID,
        status: AmbiguityStatus,
        *,
        resolved_value: str | None = None,
        notes: str | None = None,
    ) -> VaultAmbiguityRecord:
        existing = self._ambiguities.get(ambiguity_id)
        if existing is None:
            raise AmbiguityNotFoundError(f"Ambiguity {ambiguity_id} not found")
        updated = existing.model_copy(update={
            "resolution_status": status,
            "resolved_value": resolved_value,
            "resolution_notes": notes,
            "updated_at": datetime.now(UTC),
        })
        self._ambiguities[ambiguity_id] = updated
        return updated

    async def get_ambiguity(self, ambiguity_id: uuid.UUID) -> VaultAmbiguityRecord | None:
        return self._ambiguities.get(ambiguity_id)

    # ── Learning ─────────────────────────────────────────────────────

    async def record_usage(
        self, user_id: uuid.UUID, field_name: str, value: str, context: str
    ) -> LearnedFieldRecord:
        key = (user_id, field_name)
        learned = self._learned.get(key)
        now = datetime.now(UTC)

        if learned is None:
            learned = LearnedFieldRecord(
                user_id=user_id,
                field_name=field_name,
                usage_count=1,
                extracted_values=[LearnedValue(value=value)],
                contexts=[context],
                last_used=now,
            )
        else:
            values = [v.model_copy() for v in learned.extracted_values]
            for v in values:
                if v.value == value:
                    v.frequency += 1
                    break
            else:
                values.append(LearnedValue(value=value))
            contexts = learned.contexts if context in learned.contexts else [*learned.contexts, context]
            learned = learned.model_copy(update={
                "usage_count": learned.usage_count + 1,
                "extracted_values": values,
                "contexts": contexts,
                "last_used": now,
            })

        self._learned[key] = learned
        return learned

    async def list_learned_fields(self, user_id: uuid.UUID, limit: int = 50) -> list[LearnedFieldRecord]:
        fields = [lf for (owner, _), lf in self._learned.items() if owner == user_id]
        fields.sort(key=lambda lf: lf.usage_count, reverse=True)
        return fields[:limit]

    async def get_learned_field(self, user_id: uuid.UUID, field_name: str) -> LearnedFieldRecord | None:
        return self._learned.get((user_id, field_name))
