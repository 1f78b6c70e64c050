"""Pydantic records exchanged with the vault store.

The store interface speaks these frozen records, never ORM rows, so the
resolution core works identically over the in-memory and SQL stores.
Confidence is normalized to 0.0–1.0 on ingress.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType


def _now() -> datetime:
    return datetime.now(UTC)


def normalize_confidence(value: float | int | str | None, default: float = 0.0) -> float:
    """Convert a confidence score from any layer onto the 0.0–1.0 scale.

    OCR/LLM layers report either 0–1 or 0–100. Anything above 1 is treated as
    a percentage. The result is clamped to [0, 1].

    >>> normalize_confidence(85)
    0.85
    >>> normalize_confidence(0.9)
    0.9
    """
    if value is None or value == "":
        return default
    score = float(value)
    if score > 1.0:
        score = score / 100.0
    return round(min(max(score, 0.0), 1.0), 4)


class VaultFieldRecord(BaseModel):
    """A stored field value with provenance."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    field_name: str
    field_value: str
    confidence: float = 0.0
    extracted_from: DocumentType | None = None  # None for manual entries
    section_id: uuid.UUID | None = None
    document_id: uuid.UUID | None = None
    semantic_tag: str | None = None
    is_family_data: bool = False
    created_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: float | int | str | None) -> float:
        return normalize_confidence(v)


class VaultDocumentRecord(BaseModel):
    """An uploaded document and its ingestion status."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    document_type: DocumentType
    status: DocumentStatus = DocumentStatus.PENDING
    file_name: str | None = None
    confidence: float | None = None
    extracted_fields_count: int | None = None
    processing_error: str | None = None
    created_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: float | int | str | None) -> float | None:
        if v is None:
            return None
        return normalize_confidence(v)

    @property
    def is_completed(self) -> bool:
        return self.status == DocumentStatus.COMPLETED


class VaultSectionRecord(BaseModel):
    """A section grouping fields of one document category."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    section_type: SectionType
    created_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}


class AmbiguityCandidate(BaseModel):
    """One of the conflicting values behind a VaultAmbiguity."""

    value: str
    source: DocumentType | None = None
    confidence: float = 0.0

    model_config = {"frozen": True}

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: float | int | str | None) -> float:
        return normalize_confidence(v)


class VaultAmbiguityRecord(BaseModel):
    """A detected conflict between same-field values from different sources."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    field_name: str
    candidates: list[AmbiguityCandidate] = Field(default_factory=list)
    resolution_status: AmbiguityStatus = AmbiguityStatus.PENDING
    resolved_value: str | None = None
    resolution_notes: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}


class LearnedValue(BaseModel):
    """A value a user has filled, with how often."""

    value: str
    frequency: int = 1


class LearnedFieldRecord(BaseModel):
    """Usage statistics for one (user, field_name)."""

    user_id: uuid.UUID
    field_name: str
    usage_count: int = 0
    extracted_values: list[LearnedValue] = Field(default_factory=list)
    contexts: list[str] = Field(default_factory=list)
    last_used: datetime | None = None


class ExtractedFieldInput(BaseModel):
    """A field produced by the extraction pipeline, before it is stored."""

    name: str
    value: str
    confidence: float | None = None
    semantic_tag: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: float | int | str | None) -> float | None:
        if v is None:
            return None
        return normalize_confidence(v)


class SectionWithFields(BaseModel):
    """A vault section and the fields stored in it."""

    section: VaultSectionRecord
    fields: list[VaultFieldRecord] = Field(default_factory=list)
