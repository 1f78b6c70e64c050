"""Pydantic schemas for the field resolution engine.

Pure data classes — no DB dependencies. Inputs and outputs of the
classifier, source resolver, extractor, and batch/alternatives orchestrator.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from vaultfill.models.enums import DocumentType, FieldCategory, ResolutionStatus

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class PriorityRule(BaseModel):
    """Ordered document sources for a field category: primary, then fallbacks."""

    primary: DocumentType
    fallback: tuple[DocumentType, ...] = ()

    model_config = {"frozen": True}

    @property
    def sources(self) -> tuple[DocumentType, ...]:
        """All sources in probe order."""
        return (self.primary, *self.fallback)


class FieldClassification(BaseModel):
    """Result of classifying a free-text form label."""

    category: FieldCategory
    priority_rule: PriorityRule
    matched_phrase: str | None = None  # None for the flexible default

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class ExtractedValue(BaseModel):
    """A vault value selected for one (user, label, source)."""

    value: str
    confidence: float
    source: DocumentType
    field_name: str
    field_id: uuid.UUID
    semantic_tag: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Resolution output
# ---------------------------------------------------------------------------


class FieldResolution(BaseModel):
    """Outcome of resolving one form field. Every failure mode is data."""

    form_field: str
    status: ResolutionStatus
    value: str | None = None
    source: DocumentType | None = None
    confidence: float | None = None
    field_status: ResolutionStatus | None = None  # FILLED or CONVERTED when status is FILLED
    category: FieldCategory | None = None
    reason: str | None = None

    model_config = {"frozen": True}

    @property
    def is_filled(self) -> bool:
        return self.status == ResolutionStatus.FILLED


class BatchSummary(BaseModel):
    """Aggregate counts over a batch resolution."""

    total: int
    filled: int
    missing: int
    unsafe: int
    success_rate: float = Field(description="filled / total * 100, two decimals")


class BatchResolution(BaseModel):
    """Results of resolving many labels, in input order."""

    results: list[FieldResolution]
    summary: BatchSummary


# ---------------------------------------------------------------------------
# Alternatives
# ---------------------------------------------------------------------------


class FieldVariant(BaseModel):
    """One stored value for a field, as seen from a specific source."""

    value: str
    confidence: float
    source: DocumentType
    field_id: uuid.UUID
    created_at: datetime


class FieldOption(BaseModel):
    """A user-selectable value: the automatic choice or an alternative."""

    value: str
    source: DocumentType
    confidence: float
    field_id: uuid.UUID | None = None
    is_best: bool = False


class FieldWithAlternatives(BaseModel):
    """Best value for a field plus every other source's values."""

    best: FieldOption | None = None
    alternatives: list[FieldOption] = Field(default_factory=list)
    total_sources: int = 0
    message: str | None = None


class AutofillField(BaseModel):
    """One form field prepared for auto-fill with a source override."""

    form_field: str
    current: FieldOption | None = None
    alternatives: list[FieldOption] = Field(default_factory=list)
    total_sources: int = 0
    status: ResolutionStatus
    user_can_override: bool = False


class AutofillSummary(BaseModel):
    total: int
    filled: int
    missing: int
    fields_with_alternatives: int


class AutofillResult(BaseModel):
    """All prepared fields of a form."""

    success: bool
    fields: list[AutofillField]
    summary: AutofillSummary


class SelectionResult(BaseModel):
    """Acknowledgement of a user overriding the automatic choice."""

    success: bool
    field_name: str
    selected_value: str
    selected_source: DocumentType


class SourceSummary(BaseModel):
    """Which documents contribute to a form."""

    sources: list[DocumentType] = Field(default_factory=list)
    fields_by_source: dict[DocumentType, list[str]] = Field(default_factory=dict)
    source_contribution: dict[DocumentType, int] = Field(default_factory=dict)
