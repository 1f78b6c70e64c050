"""Vault ingestion service — document lifecycle and field storage.

The extraction pipeline (OCR/LLM, out of scope here) reports results
through this service:

    register_document → mark_processing → complete_document | fail_document

Completed fields are written into the section owned by the document type
and reconciled into the Personal Master, where the most authoritative
source wins. A same-name value that differs materially from the one
already in the Personal Master raises AMBIGUITY_DETECTED.
"""

from __future__ import annotations

import logging
import uuid
from types import MappingProxyType

from vaultfill.config import settings
from vaultfill.events import emit
from vaultfill.matching.fuzzy import value_similarity
from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.resolution.classifier import match_standard_field
from vaultfill.resolution.rules import FAMILY_DATA_KEYWORDS
from vaultfill.schemas.events import EventType, SystemEvent
from vaultfill.schemas.vault import (
    ExtractedFieldInput,
    LearnedFieldRecord,
    LearnedValue,
    SectionWithFields,
    VaultAmbiguityRecord,
    VaultDocumentRecord,
    VaultFieldRecord,
    normalize_confidence,
)
from vaultfill.vault.store import AmbiguityNotFoundError, DocumentNotFoundError, VaultStore

logger = logging.getLogger(__name__)

# ── Routing and authority ────────────────────────────────────────────

DOCUMENT_SECTION_ROUTES: MappingProxyType[DocumentType, SectionType] = MappingProxyType({
    DocumentType.AADHAAR: SectionType.AADHAAR_SECTION,
    DocumentType.PAN: SectionType.PAN_SECTION,
    DocumentType.PASSPORT: SectionType.PASSPORT_SECTION,
    DocumentType.TENTH: SectionType.EDUCATION_10TH,
    DocumentType.INTER: SectionType.EDUCATION_INTER,
    DocumentType.DEGREE: SectionType.EDUCATION_DEGREE,
})

SECTION_AUTHORITY: MappingProxyType[SectionType, int] = MappingProxyType({
    SectionType.PERSONAL_MASTER: 100,
    SectionType.AADHAAR_SECTION: 95,
    SectionType.PASSPORT_SECTION: 90,
    SectionType.PAN_SECTION: 85,
    SectionType.EDUCATION_DEGREE: 70,
    SectionType.EDUCATION_INTER: 70,
    SectionType.EDUCATION_10TH: 70,
})

# Canonical fields mirrored into the Personal Master
PERSONAL_MASTER_FIELDS: frozenset[str] = frozenset({
    "student_name",
    "father_name",
    "mother_name",
    "dob",
    "gender",
    "address",
    "email",
    "phone",
    "aadhaar",
    "pan",
})

# Confidence assumed when neither the field nor the document reports one
DEFAULT_FIELD_CONFIDENCE = 0.85

# Allowed status moves; FAILED documents may be reprocessed
_TRANSITIONS: MappingProxyType[DocumentStatus, frozenset[DocumentStatus]] = MappingProxyType({
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.COMPLETED, DocumentStatus.FAILED}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.COMPLETED: frozenset(),
})


class DocumentStateError(ValueError):
    """Raised on an illegal document status transition."""


def route_document(document_type: DocumentType) -> SectionType:
    """Section that stores a document type's fields."""
    return DOCUMENT_SECTION_ROUTES[document_type]


def source_authority(document_type: DocumentType | None) -> int:
    """Authority of a source document; manual entries rank lowest."""
    if document_type is None:
        return 0
    return SECTION_AUTHORITY[route_document(document_type)]


def is_family_data(field_name: str) -> bool:
    """Whether a field name refers to a relative (father, mother, spouse...)."""
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in FAMILY_DATA_KEYWORDS)


class VaultService:
    """Writes extraction results into the vault and manages its side records."""

    def __init__(self, store: VaultStore) -> None:
        self._store = store

    # ── Document lifecycle ───────────────────────────────────────────

    async def register_document(
        self,
        user_id: uuid.UUID,
        document_type: DocumentType,
        file_name: str | None = None,
    ) -> VaultDocumentRecord:
        """Record an uploaded document as PENDING."""
        document = await self._store.add_document(
            VaultDocumentRecord(user_id=user_id, document_type=document_type, file_name=file_name)
        )
        logger.info("Registered %s document %s for user %s", document_type.value, document.id, user_id)
        await self._publish(EventType.DOCUMENT_REGISTERED, document)
        return document

    async def mark_processing(self, document_id: uuid.UUID) -> VaultDocumentRecord:
        """Extraction has started."""
        await self._transition(document_id, DocumentStatus.PROCESSING)
        document = await self._store.update_document(document_id, status=DocumentStatus.PROCESSING)
        await self._publish(EventType.DOCUMENT_PROCESSING, document)
        return document

    async def complete_document(
        self,
        document_id: uuid.UUID,
        fields: list[ExtractedFieldInput],
        confidence: float | int | None = None,
    ) -> list[VaultFieldRecord]:
        """Store extracted fields and mark the document COMPLETED.

        Args:
            document_id: Document being completed.
            fields: Extracted name/value pairs.
            confidence: Document-level confidence, on either 0-1 or 0-100 scale.
                Used for fields that carry none of their own.

        Returns:
            The field records written to the document's section.
        """
        document = await self._transition(document_id, DocumentStatus.COMPLETED)
        doc_confidence = normalize_confidence(confidence, default=DEFAULT_FIELD_CONFIDENCE)
        section = await self._store.get_or_create_section(document.user_id, route_document(document.document_type))

        records = [
            VaultFieldRecord(
                user_id=document.user_id,
                field_name=f.name.strip(),
                field_value=f.value.strip(),
                confidence=f.confidence if f.confidence is not None else doc_confidence,
                extracted_from=document.document_type,
                section_id=section.id,
                document_id=document.id,
                semantic_tag=f.semantic_tag or match_standard_field(f.name),
                is_family_data=is_family_data(f.name),
            )
            for f in fields
            if f.name.strip() and f.value.strip()
        ]
        saved = await self._store.add_fields(records)
        await self._reconcile_personal_master(document, saved)

        completed = await self._store.update_document(
            document_id,
            status=DocumentStatus.COMPLETED,
            confidence=doc_confidence,
            extracted_fields_count=len(saved),
        )
        logger.info(
            "Completed %s document %s: %d fields into %s",
            document.document_type.value,
            document_id,
            len(saved),
            section.section_type.value,
        )
        await self._publish(EventType.DOCUMENT_COMPLETED, completed, fields_count=len(saved))
        return saved

    async def fail_document(self, document_id: uuid.UUID, error: str) -> VaultDocumentRecord:
        """Extraction failed; no fields are written."""
        await self._transition(document_id, DocumentStatus.FAILED)
        document = await self._store.update_document(
            document_id, status=DocumentStatus.FAILED, processing_error=error or "Unknown error"
        )
        logger.warning("Document %s failed: %s", document_id, error)
        await self._publish(EventType.DOCUMENT_FAILED, document, error=error)
        return document

    async def get_sections(self, user_id: uuid.UUID) -> list[SectionWithFields]:
        """Every section of a user with its fields."""
        sections = await self._store.list_sections(user_id)
        result = []
        for section in sections:
            fields = await self._store.find_fields(user_id, section_id=section.id)
            result.append(SectionWithFields(section=section, fields=fields))
        return result

    # ── Ambiguities ──────────────────────────────────────────────────

    async def list_ambiguities(
        self, user_id: uuid.UUID, status: AmbiguityStatus = AmbiguityStatus.PENDING
    ) -> list[VaultAmbiguityRecord]:
        return await self._store.list_ambiguities(user_id, status)

    async def resolve_ambiguity(
        self,
        ambiguity_id: uuid.UUID,
        resolved_value: str,
        notes: str | None = None,
        *,
        user_id: uuid.UUID | None = None,
    ) -> VaultAmbiguityRecord:
        """Record the user's chosen value for an ambiguity.

        Raises:
            AmbiguityNotFoundError: Unknown id, or owned by another user.
        """
        await self._owned_ambiguity(ambiguity_id, user_id)
        resolved = await self._store.set_ambiguity_status(
            ambiguity_id, AmbiguityStatus.RESOLVED, resolved_value=resolved_value, notes=notes
        )
        await self._emit(
            SystemEvent(
                event_type=EventType.AMBIGUITY_RESOLVED,
                user_id=resolved.user_id,
                data={"ambiguity_id": str(ambiguity_id), "field_label": resolved.field_name, "value": resolved_value},
                source_module="vault.service",
            )
        )
        return resolved

    async def ignore_ambiguity(
        self, ambiguity_id: uuid.UUID, *, user_id: uuid.UUID | None = None
    ) -> VaultAmbiguityRecord:
        await self._owned_ambiguity(ambiguity_id, user_id)
        return await self._store.set_ambiguity_status(ambiguity_id, AmbiguityStatus.IGNORED)

    # ── Learning queries ─────────────────────────────────────────────

    async def get_learned_fields(self, user_id: uuid.UUID, limit: int = 50) -> list[LearnedFieldRecord]:
        return await self._store.list_learned_fields(user_id, limit)

    async def get_most_frequent_values(
        self, user_id: uuid.UUID, field_name: str, limit: int = 5
    ) -> list[LearnedValue]:
        """Values a user most often fills into a field."""
        learned = await self._store.get_learned_field(user_id, field_name)
        if learned is None:
            return []
        return sorted(learned.extracted_values, key=lambda v: v.frequency, reverse=True)[:limit]

    # ── Internals ────────────────────────────────────────────────────

    async def _transition(self, document_id: uuid.UUID, target: DocumentStatus) -> VaultDocumentRecord:
        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if target not in _TRANSITIONS[document.status]:
            msg = f"Cannot move document {document_id} from {document.status.value} to {target.value}"
            raise DocumentStateError(msg)
        return document

    async def _owned_ambiguity(self, ambiguity_id: uuid.UUID, user_id: uuid.UUID | None) -> VaultAmbiguityRecord:
        ambiguity = await self._store.get_ambiguity(ambiguity_id)
        if ambiguity is None or (user_id is not None and ambiguity.user_id != user_id):
            raise AmbiguityNotFoundError(f"Ambiguity {ambiguity_id} not found")
        return ambiguity

    async def _reconcile_personal_master(
        self, document: VaultDocumentRecord, fields: list[VaultFieldRecord]
    ) -> None:
        """Mirror personal fields into the Personal Master, most authoritative source first."""
        personal = [f for f in fields if f.semantic_tag in PERSONAL_MASTER_FIELDS]
        if not personal:
            return

        master = await self._store.get_or_create_section(document.user_id, SectionType.PERSONAL_MASTER)
        incoming_authority = source_authority(document.document_type)
        threshold = settings.resolution.duplicate_similarity_threshold

        for field in personal:
            existing = await self._store.find_fields(
                document.user_id, section_id=master.id, field_name=field.field_name, limit=1
            )
            if not existing:
                await self._store.add_fields([
                    field.model_copy(update={"id": uuid.uuid4(), "section_id": master.id})
                ])
                continue

            current = existing[0]
            if value_similarity(current.field_value, field.field_value) <= threshold:
                await self._report_conflict(document.user_id, current, field)

            if incoming_authority >= source_authority(current.extracted_from):
                await self._store.replace_field(
                    current.model_copy(update={
                        "field_value": field.field_value,
                        "confidence": field.confidence,
                        "extracted_from": field.extracted_from,
                        "document_id": field.document_id,
                    })
                )
                logger.debug(
                    "Personal Master %r updated from %s",
                    field.field_name,
                    document.document_type.value,
                )

    async def _report_conflict(
        self, user_id: uuid.UUID, current: VaultFieldRecord, incoming: VaultFieldRecord
    ) -> None:
        candidates = [
            {
                "value": f.field_value,
                "source": f.extracted_from.value if f.extracted_from else None,
                "confidence": f.confidence,
            }
            for f in (current, incoming)
        ]
        logger.info("Conflicting values for %r (user=%s)", current.field_name, user_id)
        await self._emit(
            SystemEvent(
                event_type=EventType.AMBIGUITY_DETECTED,
                user_id=user_id,
                data={"field_label": current.field_name, "candidates": candidates},
                source_module="vault.service",
            )
        )

    async def _publish(self, event_type: EventType, document: VaultDocumentRecord, **extra: object) -> None:
        await self._emit(
            SystemEvent(
                event_type=event_type,
                user_id=document.user_id,
                data={
                    "document_id": str(document.id),
                    "document_type": document.document_type.value,
                    "status": document.status.value,
                    **extra,
                },
                source_module="vault.service",
            )
        )

    async def _emit(self, event: SystemEvent) -> None:
        try:
            await emit(event)
        except Exception:
            logger.exception("Failed to emit %s", event.event_type.value)
