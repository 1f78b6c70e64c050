"""HTTP surface for document ingestion, field resolution, alternatives,
ambiguity review and learned values.

Thin transport over FieldResolver, AlternativesService, and VaultService.
The vault store is taken from `app.state.store`, set by the lifespan.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from vaultfill.models.enums import AmbiguityStatus, DocumentType
from vaultfill.resolution.alternatives import AlternativesService
from vaultfill.resolution.resolver import FieldResolver
from vaultfill.schemas.resolution import (
    AutofillResult,
    BatchResolution,
    FieldResolution,
    FieldWithAlternatives,
    SelectionResult,
    SourceSummary,
)
from vaultfill.schemas.vault import (
    ExtractedFieldInput,
    LearnedFieldRecord,
    LearnedValue,
    SectionWithFields,
    VaultAmbiguityRecord,
    VaultDocumentRecord,
    VaultFieldRecord,
)
from vaultfill.vault.service import DocumentStateError, VaultService
from vaultfill.vault.store import AmbiguityNotFoundError, DocumentNotFoundError, StoreError, VaultStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vault", tags=["vault"])

T = TypeVar("T")


# ── Request bodies ───────────────────────────────────────────────────


class ResolveRequest(BaseModel):
    field_label: str


class BatchResolveRequest(BaseModel):
    field_labels: list[str] = Field(default_factory=list)


class SelectionRequest(BaseModel):
    field_label: str
    value: str
    source: DocumentType


class AmbiguityResolveRequest(BaseModel):
    resolved_value: str
    notes: str | None = None


class DocumentRegisterRequest(BaseModel):
    document_type: DocumentType
    file_name: str | None = None


class DocumentCompleteRequest(BaseModel):
    fields: list[ExtractedFieldInput] = Field(default_factory=list)
    confidence: float | None = None


class DocumentFailRequest(BaseModel):
    error: str = ""


# ── Dependencies ─────────────────────────────────────────────────────


def get_store(request: Request) -> VaultStore:
    """The application's vault store."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Vault store not initialized")
    return store


def _unavailable(exc: StoreError) -> HTTPException:
    logger.error("Vault store error: %s", exc)
    return HTTPException(status_code=503, detail="Vault store unavailable")


async def _document_call(call: Awaitable[T]) -> T:
    """Await a document lifecycle call, mapping its errors to HTTP statuses."""
    try:
        return await call
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DocumentStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StoreError as exc:
        raise _unavailable(exc) from exc


# ── Documents ────────────────────────────────────────────────────────


@router.post("/{user_id}/documents", status_code=201)
async def register_document(
    user_id: uuid.UUID,
    body: DocumentRegisterRequest,
    store: VaultStore = Depends(get_store),
) -> VaultDocumentRecord:
    """Record an uploaded document as PENDING."""
    try:
        return await VaultService(store).register_document(user_id, body.document_type, body.file_name)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/documents/{document_id}/processing")
async def mark_processing(
    document_id: uuid.UUID,
    store: VaultStore = Depends(get_store),
) -> VaultDocumentRecord:
    return await _document_call(VaultService(store).mark_processing(document_id))


@router.post("/documents/{document_id}/complete")
async def complete_document(
    document_id: uuid.UUID,
    body: DocumentCompleteRequest,
    store: VaultStore = Depends(get_store),
) -> list[VaultFieldRecord]:
    """Store the extracted fields of a document and mark it COMPLETED."""
    return await _document_call(VaultService(store).complete_document(document_id, body.fields, body.confidence))


@router.post("/documents/{document_id}/fail")
async def fail_document(
    document_id: uuid.UUID,
    body: DocumentFailRequest,
    store: VaultStore = Depends(get_store),
) -> VaultDocumentRecord:
    return await _document_call(VaultService(store).fail_document(document_id, body.error))


@router.get("/{user_id}/sections")
async def list_sections(
    user_id: uuid.UUID,
    store: VaultStore = Depends(get_store),
) -> list[SectionWithFields]:
    """Every vault section of a user with its fields."""
    try:
        return await VaultService(store).get_sections(user_id)
    except StoreError as exc:
        raise _unavailable(exc) from exc


# ── Resolution ───────────────────────────────────────────────────────


@router.post("/{user_id}/resolve")
async def resolve_field(
    user_id: uuid.UUID,
    body: ResolveRequest,
    store: VaultStore = Depends(get_store),
) -> FieldResolution:
    """Resolve one form label silently from the best source."""
    return await FieldResolver(store).resolve_field(user_id, body.field_label)


@router.post("/{user_id}/resolve-batch")
async def resolve_fields(
    user_id: uuid.UUID,
    body: BatchResolveRequest,
    store: VaultStore = Depends(get_store),
) -> BatchResolution:
    """Resolve many labels with a summary."""
    return await FieldResolver(store).resolve_fields(user_id, body.field_labels)


# ── Alternatives ─────────────────────────────────────────────────────


@router.post("/{user_id}/alternatives")
async def field_alternatives(
    user_id: uuid.UUID,
    body: ResolveRequest,
    store: VaultStore = Depends(get_store),
) -> FieldWithAlternatives:
    try:
        return await AlternativesService(store).get_field_with_alternatives(user_id, body.field_label)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/{user_id}/autofill")
async def autofill(
    user_id: uuid.UUID,
    body: BatchResolveRequest,
    store: VaultStore = Depends(get_store),
) -> AutofillResult:
    """Every field with its default value and user-selectable alternatives."""
    try:
        return await AlternativesService(store).autofill_with_selection(user_id, body.field_labels)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/{user_id}/form-sources")
async def form_sources(
    user_id: uuid.UUID,
    body: BatchResolveRequest,
    store: VaultStore = Depends(get_store),
) -> SourceSummary:
    """Which documents contribute to a form, and to how many fields."""
    try:
        return await AlternativesService(store).get_form_source_summary(user_id, body.field_labels)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/{user_id}/selections")
async def record_selection(
    user_id: uuid.UUID,
    body: SelectionRequest,
    store: VaultStore = Depends(get_store),
) -> SelectionResult:
    """The user picked another source's value for a field."""
    return await AlternativesService(store).record_user_selection(
        user_id, body.field_label, body.value, body.source
    )


# ── Ambiguities ──────────────────────────────────────────────────────


@router.get("/{user_id}/ambiguities")
async def list_ambiguities(
    user_id: uuid.UUID,
    status: AmbiguityStatus = Query(default=AmbiguityStatus.PENDING),
    store: VaultStore = Depends(get_store),
) -> list[VaultAmbiguityRecord]:
    try:
        return await VaultService(store).list_ambiguities(user_id, status)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/ambiguities/{ambiguity_id}/resolve")
async def resolve_ambiguity(
    ambiguity_id: uuid.UUID,
    body: AmbiguityResolveRequest,
    store: VaultStore = Depends(get_store),
) -> VaultAmbiguityRecord:
    """Record the value the user chose for a conflicting field."""
    try:
        return await VaultService(store).resolve_ambiguity(ambiguity_id, body.resolved_value, body.notes)
    except AmbiguityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("/ambiguities/{ambiguity_id}/ignore")
async def ignore_ambiguity(
    ambiguity_id: uuid.UUID,
    store: VaultStore = Depends(get_store),
) -> VaultAmbiguityRecord:
    """Dismiss a conflict without choosing a value."""
    try:
        return await VaultService(store).ignore_ambiguity(ambiguity_id)
    except AmbiguityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreError as exc:
        raise _unavailable(exc) from exc


# ── Learned values ───────────────────────────────────────────────────


@router.get("/{user_id}/learned-fields")
async def learned_fields(
    user_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=500),
    store: VaultStore = Depends(get_store),
) -> list[LearnedFieldRecord]:
    """Fields the user fills most, with their usage statistics."""
    try:
        return await VaultService(store).get_learned_fields(user_id, limit)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.get("/{user_id}/learned-fields/{field_name}/values")
async def most_frequent_values(
    user_id: uuid.UUID,
    field_name: str,
    limit: int = Query(default=5, ge=1, le=50),
    store: VaultStore = Depends(get_store),
) -> list[LearnedValue]:
    try:
        return await VaultService(store).get_most_frequent_values(user_id, field_name, limit)
    except StoreError as exc:
        raise _unavailable(exc) from exc
