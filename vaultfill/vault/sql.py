"""PostgreSQL vault store on SQLAlchemy 2.0 async.

Each method opens its own short-lived session from the injected factory,
so concurrent resolutions never share a session. Driver and SQL errors are
re-raised as StoreError.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.models.learned_field import LearnedField
from vaultfill.models.vault_ambiguity import VaultAmbiguity
from vaultfill.models.vault_document import VaultDocument
from vaultfill.models.vault_field import VaultField
from vaultfill.models.vault_section import VaultSection
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


# ── Row → record converters ──────────────────────────────────────────


def _document_record(row: VaultDocument) -> VaultDocumentRecord:
    return VaultDocumentRecord(
        id=row.id,
        user_id=row.user_id,
        document_type=DocumentType(row.document_type),
        status=DocumentStatus(row.status),
        file_name=row.file_name,
        confidence=row.confidence,
        extracted_fields_count=row.extracted_fields_count,
        processing_error=row.processing_error,
        created_at=row.created_at,
    )


def _section_record(row: VaultSection) -> VaultSectionRecord:
    return VaultSectionRecord(
        id=row.id,
        user_id=row.user_id,
        section_type=SectionType(row.section_type),
        created_at=row.created_at,
    )


def _field_record(row: VaultField) -> VaultFieldRecord:
    return VaultFieldRecord(
        id=row.id,
        user_id=row.user_id,
        field_name=row.field_name,
        field_value=row.field_value,
        confidence=row.confidence,
        extracted_from=DocumentType(row.extracted_from) if row.extracted_from else None,
        section_id=row.section_id,
        document_id=row.document_id,
        semantic_tag=row.semantic_tag,
        is_family_data=row.is_family_data,
        created_at=row.created_at,
    )


def _ambiguity_record(row: VaultAmbiguity) -> VaultAmbiguityRecord:
    return VaultAmbiguityRecord(
        id=row.id,
        user_id=row.user_id,
        field_name=row.field_name,
        candidates=[AmbiguityCandidate.model_validate(c) for c in row.candidates or []],
        resolution_status=AmbiguityStatus(row.resolution_status),
        resolved_value=row.resolved_value,
        resolution_notes=row.resolution_notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _learned_record(row: LearnedField) -> LearnedFieldRecord:
    return LearnedFieldRecord(
        user_id=row.user_id,
        field_name=row.field_name,
        usage_count=row.usage_count,
        extracted_values=[LearnedValue.model_validate(v) for v in row.extracted_values or []],
        contexts=list(row.contexts or []),
        last_used=row.last_used,
    )


class SqlVaultStore(VaultStore):
    """VaultStore backed by PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; commit on success, roll back and wrap driver errors."""
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Vault store query failed: %s", exc)
            raise StoreError(str(exc)) from exc

    # ── Documents ────────────────────────────────────────────────────

    async def add_document(self, document: VaultDocumentRecord) -> VaultDocumentRecord:
        async with self._session() as db:
            row = VaultDocument(
                id=document.id,
                user_id=document.user_id,
                document_type=document.document_type.value,
                status=document.status.value,
                file_name=document.file_name,
                confidence=document.confidence,
                extracted_fields_count=document.extracted_fields_count,
                processing_error=document.processing_error,
                created_at=document.created_at,
            )
            db.add(row)
            await db.flush()
            return _document_record(row)

    async def get_document(self, document_id: uuid.UUID) -> VaultDocumentRecord | None:
        async with self._session() as db:
            row = await db.get(VaultDocument, document_id)
            return _document_record(row) if row is not None else None

    async def update_document(
        self,
        document_id: uuid.UUID,
        *,
        status: DocumentStatus,
        confidence: float | None = None,
        extracted_fields_count: int | None = None,
        processing_error: str | None = None,
    ) -> VaultDocumentRecord:
        async with self._session() as db:
            row = await db.get(VaultDocument, document_id)
            if row is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            row.status = status.value
            if confidence is not None:
                row.confidence = confidence
            if extracted_fields_count is not None:
                row.extracted_fields_count = extracted_fields_count
            if processing_error is not None:
                row.processing_error = processing_error
            await db.flush()
            return _document_record(row)

    async def has_completed_document(self, user_id: uuid.UUID, document_type: DocumentType) -> bool:
        async with self._session() as db:
            result = await db.execute(
                select(func.count(VaultDocument.id)).where(
                    VaultDocument.user_id == user_id,
                    VaultDocument.document_type == document_type.value,
                    VaultDocument.status == DocumentStatus.COMPLETED.value,
                )
            )
            return (result.scalar() or 0) > 0

    async def completed_document_types(self, user_id: uuid.UUID) -> set[DocumentType]:
        async with self._session() as db:
            result = await db.execute(
                select(VaultDocument.document_type)
                .where(
                    VaultDocument.user_id == user_id,
                    VaultDocument.status == DocumentStatus.COMPLETED.value,
                )
                .distinct()
            )
            return {DocumentType(value) for value in result.scalars().all()}

    # ── Sections ─────────────────────────────────────────────────────

    async def get_or_create_section(self, user_id: uuid.UUID, section_type: SectionType) -> VaultSectionRecord:
        async with self._session() as db:
            result = await db.execute(
                select(VaultSection).where(
                    VaultSection.user_id == user_id,
                    VaultSection.section_type == section_type.value,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = VaultSection(user_id=user_id, section_type=section_type.value)
                db.add(row)
                await db.flush()
                await db.refresh(row)
            return _section_record(row)

    async def list_sections(self, user_id: uuid.UUID) -> list[VaultSectionRecord]:
        async with self._session() as db:
            result = await db.execute(select(VaultSection).where(VaultSection.user_id == user_id))
            return [_section_record(row) for row in result.scalars().all()]

    # ── Fields ───────────────────────────────────────────────────────

    async def add_fields(self, fields: Iterable[VaultFieldRecord]) -> list[VaultFieldRecord]:
        async with self._session() as db:
            rows = [
                VaultField(
                    id=f.id,
                    user_id=f.user_id,
                    section_id=f.section_id,
                    document_id=f.document_id,
                    field_name=f.field_name,
                    field_value=f.field_value,
                    confidence=f.confidence,
                    extracted_from=f.extracted_from.value if f.extracted_from else None,
                    semantic_tag=f.semantic_tag,
                    is_family_data=f.is_family_data,
                    created_at=f.created_at,
                )
                for f in fields
            ]
            db.add_all(rows)
            await db.flush()
            return [_field_record(row) for row in rows]

    async def replace_field(self, field: VaultFieldRecord) -> VaultFieldRecord:
        async with self._session() as db:
            row = await db.get(VaultField, field.id)
            if row is None:
                raise StoreError(f"Field {field.id} not found")
            row.field_value = field.field_value
            row.confidence = field.confidence
            row.extracted_from = field.extracted_from.value if field.extracted_from else None
            row.document_id = field.document_id
            await db.flush()
            return _field_record(row)

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
        stmt = select(VaultField).where(
            VaultField.user_id == user_id,
            VaultField.confidence >= min_confidence,
        )
        if source is not None:
            stmt = stmt.where(VaultField.extracted_from == source.value)
        if section_id is not None:
            stmt = stmt.where(VaultField.section_id == section_id)
        if field_name is not None:
            stmt = stmt.where(func.lower(VaultField.field_name) == field_name.lower())
        stmt = stmt.order_by(VaultField.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session() as db:
            result = await db.execute(stmt)
            return [_field_record(row) for row in result.scalars().all()]

    # ── Ambiguities ──────────────────────────────────────────────────

    async def upsert_ambiguity(
        self,
        user_id: uuid.UUID,
        field_name: str,
        candidates: list[AmbiguityCandidate],
    ) -> VaultAmbiguityRecord:
        payload = [c.model_dump(mode="json") for c in candidates]
        async with self._session() as db:
            result = await db.execute(
                select(VaultAmbiguity).where(
                    VaultAmbiguity.user_id == user_id,
                    VaultAmbiguity.field_name == field_name,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = VaultAmbiguity(
                    user_id=user_id,
                    field_name=field_name,
                    candidates=payload,
                    resolution_status=AmbiguityStatus.PENDING.value,
                )
                db.add(row)
            else:
                row.candidates = payload
                row.resolution_status = AmbiguityStatus.PENDING.value
            await db.flush()
            await db.refresh(row)
            return _ambiguity_record(row)

    async def list_ambiguities(
        self, user_id: uuid.UUID, status: AmbiguityStatus = AmbiguityStatus.PENDING
    ) -> list[VaultAmbiguityRecord]:
        async with self._session() as db:
            result = await db.execute(
                select(VaultAmbiguity)
                .where(
                    VaultAmbiguity.user_id == user_id,
                    VaultAmbiguity.resolution_status == status.value,
                )
                .order_by(VaultAmbiguity.created_at.desc())
            )
            return [_ambiguity_record(row) for row in result.scalars().all()]

    async def set_ambiguity_status(
        self,
        ambiguity_id: uuid.UUID,
        status: AmbiguityStatus,
        *,
        resolved_value: str | None = None,
        notes: str | None = None,
    ) -> VaultAmbiguityRecord:
        async with self._session() as db:
            row = await db.get(VaultAmbiguity, ambiguity_id)
            if row is None:
                raise AmbiguityNotFoundError(f"Ambiguity {ambiguity_id} not found")
            row.resolution_status = status.value
            row.resolved_value = resolved_value
            row.resolution_notes = notes
            await db.flush()
            await db.refresh(row)
            return _ambiguity_record(row)

    async def get_ambiguity(self, ambiguity_id: uuid.UUID) -> VaultAmbiguityRecord | None:
        async with self._session() as db:
            row = await db.get(VaultAmbiguity, ambiguity_id)
            return _ambiguity_record(row) if row is not None else None

    # ── Learning ─────────────────────────────────────────────────────

    async def record_usage(
        self, user_id: uuid.UUID, field_name: str, value: str, context: str
    ) -> LearnedFieldRecord:
        async with self._session() as db:
            result = await db.execute(
                select(LearnedField).where(
                    LearnedField.user_id == user_id,
                    LearnedField.field_name == field_name,
                )
            )
            row = result.scalar_one_or_none()
            now = datetime.now(UTC)

            if row is None:
                row = LearnedField(
                    user_id=user_id,
                    field_name=field_name,
                    usage_count=1,
                    extracted_values=[{"value": value, "frequency": 1}],
                    contexts=[context],
                    last_used=now,
                )
                db.add(row)
            else:
                # JSONB columns need a new object to be flagged dirty
                values = [dict(v) for v in row.extracted_values or []]
                for v in values:
                    if v.get("value") == value:
                        v["frequency"] = int(v.get("frequency", 0)) + 1
                        break
                else:
                    values.append({"value": value, "frequency": 1})
                row.extracted_values = values
                if context not in (row.contexts or []):
                    row.contexts = [*(row.contexts or []), context]
                row.usage_count += 1
                row.last_used = now

            await db.flush()
            return _learned_record(row)

    async def list_learned_fields(self, user_id: uuid.UUID, limit: int = 50) -> list[LearnedFieldRecord]:
        async with self._session() as db:
            result = await db.execute(
                select(LearnedField)
                .where(LearnedField.user_id == user_id)
                .order_by(LearnedField.usage_count.desc())
                .limit(limit)
            )
            return [_learned_record(row) for row in result.scalars().all()]

    async def get_learned_field(self, user_id: uuid.UUID, field_name: str) -> LearnedFieldRecord | None:
        async with self._session() as db:
            result = await db.execute(
                select(LearnedField).where(
                    LearnedField.user_id == user_id,
                    LearnedField.field_name == field_name,
                )
            )
            row = result.scalar_one_or_none()
            return _learned_record(row) if row is not None else None
