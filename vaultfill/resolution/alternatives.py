"""Multi-source alternatives — every source's value for a field, so the user can override.

The resolver picks one value silently. This module instead collects the
variants of a field across all completed documents, offers the most
confident one as the default, and lists the rest as alternatives. A user
override is published as a SOURCE_SELECTED event for the learning tracker;
materially different values across sources raise AMBIGUITY_DETECTED.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid

from vaultfill.config import settings
from vaultfill.events import emit
from vaultfill.matching.fuzzy import value_similarity
from vaultfill.models.enums import DocumentType, ResolutionStatus
from vaultfill.resolution.classifier import is_family_label, match_standard_field
from vaultfill.resolution.extractor import family_field_matcher, is_family_field
from vaultfill.schemas.events import EventType, SystemEvent
from vaultfill.schemas.resolution import (
    AutofillField,
    AutofillResult,
    AutofillSummary,
    FieldOption,
    FieldVariant,
    FieldWithAlternatives,
    SelectionResult,
    SourceSummary,
)
from vaultfill.schemas.vault import VaultFieldRecord
from vaultfill.vault.store import VaultStore

logger = logging.getLogger(__name__)

_SECTION_MARKERS = ("🧾", "FORM", "---")
_RULE_RE = re.compile(r"[_\-]{2,}")
_TRAILING_COLON_RE = re.compile(r":\s*$")
_SPACES_RE = re.compile(r"\s{2,}")

VariantGroups = dict[DocumentType, list[FieldVariant]]


def normalize_field_name(label: str | None) -> str:
    """Clean a pasted form label; "" for section headers and noise.

    >>> normalize_field_name("**Date of Birth:** ")
    'date of birth'
    >>> normalize_field_name("--- PERSONAL DETAILS ---")
    ''
    """
    if not label or not isinstance(label, str):
        return ""
    if any(marker in label for marker in _SECTION_MARKERS) or len(label.strip()) < 2:
        return ""

    cleaned = label.replace("**", "")
    cleaned = _RULE_RE.sub("", cleaned)
    cleaned = _TRAILING_COLON_RE.sub("", cleaned.strip())
    cleaned = _SPACES_RE.sub(" ", cleaned)
    return cleaned.strip().lower()


def _matcher(cleaned: str):
    """Predicate selecting stored fields that may answer `cleaned`."""
    if is_family_label(cleaned):
        return family_field_matcher(cleaned)

    label_re = re.compile(re.escape(cleaned), re.IGNORECASE)
    first_word = cleaned.split(" ")[0]
    prefix_re = (
        re.compile("^" + re.escape(first_word), re.IGNORECASE)
        if len(first_word) > 2 and first_word != "name"
        else None
    )
    canonical = match_standard_field(cleaned)
    canonical_re = re.compile(re.escape(canonical.replace("_", " ")), re.IGNORECASE) if canonical else None

    def matches(record: VaultFieldRecord) -> bool:
        if is_family_field(record, cleaned):
            return False
        name = record.field_name
        return bool(
            label_re.search(name)
            or (prefix_re is not None and prefix_re.search(name))
            or (canonical_re is not None and canonical_re.search(name))
            or (canonical is not None and record.semantic_tag == canonical)
        )

    return matches


class AlternativesService:
    """Best value plus alternatives per field, and user source selection."""

    def __init__(self, store: VaultStore) -> None:
        self._store = store

    async def get_field_variants(self, user_id: uuid.UUID, label: str) -> VariantGroups:
        """Variants of a field grouped by source document.

        Groups are ordered by their best variant; each group is sorted by
        confidence, then recency. Only COMPLETED sources appear.
        """
        cleaned = normalize_field_name(label)
        if not cleaned:
            logger.debug("Skipping non-field %r", label)
            return {}

        cfg = settings.resolution
        completed = await self._store.completed_document_types(user_id)
        if not completed:
            return {}

        matches = _matcher(cleaned)

        async def collect(min_confidence: float) -> list[VaultFieldRecord]:
            fields = await self._store.find_fields(user_id, min_confidence=min_confidence)
            return [f for f in fields if f.extracted_from in completed and matches(f)]

        found = await collect(cfg.alternatives_confidence_floor)
        if not found and not is_family_label(cleaned):
            # A relative's name is never guessed from weak matches
            found = await collect(0.0)

        found.sort(key=lambda f: (f.confidence, f.created_at), reverse=True)
        groups: VariantGroups = {}
        for f in found[: cfg.variant_limit]:
            groups.setdefault(f.extracted_from, []).append(
                FieldVariant(
                    value=f.field_value,
                    confidence=f.confidence,
                    source=f.extracted_from,
                    field_id=f.id,
                    created_at=f.created_at,
                )
            )

        logger.debug("Variants for %r from %d sources", cleaned, len(groups))
        return groups

    async def get_field_with_alternatives(self, user_id: uuid.UUID, label: str) -> FieldWithAlternatives:
        """The most confident variant plus every other distinct value."""
        groups = await self.get_field_variants(user_id, label)
        if not groups:
            return FieldWithAlternatives(message="No data found for this field")

        best = max((variants[0] for variants in groups.values()), key=lambda v: v.confidence)

        seen = {best.value}
        alternatives: list[FieldOption] = []
        for variant in sorted(
            (v for variants in groups.values() for v in variants), key=lambda v: v.confidence, reverse=True
        ):
            if variant.value in seen:
                continue
            seen.add(variant.value)
            alternatives.append(
                FieldOption(
                    value=variant.value,
                    source=variant.source,
                    confidence=variant.confidence,
                    field_id=variant.field_id,
                )
            )

        await self._report_conflicts(user_id, label, best, groups)

        return FieldWithAlternatives(
            best=FieldOption(
                value=best.value,
                source=best.source,
                confidence=best.confidence,
                field_id=best.field_id,
                is_best=True,
            ),
            alternatives=alternatives,
            total_sources=len(groups),
        )

    async def autofill_with_selection(self, user_id: uuid.UUID, labels: list[str]) -> AutofillResult:
        """Prepare every real field of a form with its default value and alternatives."""
        valid = [label for label in labels if normalize_field_name(label)]
        prepared = await asyncio.gather(*(self.get_field_with_alternatives(user_id, label) for label in valid))

        fields = [
            AutofillField(
                form_field=label,
                current=data.best,
                alternatives=data.alternatives,
                total_sources=data.total_sources,
                status=ResolutionStatus.FILLED if data.best else ResolutionStatus.MISSING,
                user_can_override=bool(data.best and data.alternatives),
            )
            for label, data in zip(valid, prepared, strict=True)
        ]
        filled = sum(1 for f in fields if f.status == ResolutionStatus.FILLED)
        logger.info("Prepared %d/%d fields with alternatives for user %s", filled, len(valid), user_id)

        return AutofillResult(
            success=filled > 0,
            fields=fields,
            summary=AutofillSummary(
                total=len(valid),
                filled=filled,
                missing=len(valid) - filled,
                fields_with_alternatives=sum(1 for f in fields if f.alternatives),
            ),
        )

    async def record_user_selection(
        self,
        user_id: uuid.UUID,
        label: str,
        value: str,
        source: DocumentType,
    ) -> SelectionResult:
        """Publish a user's override so the learning tracker can record it."""
        logger.info("User %s selected %r = %r from %s", user_id, label, value, source.value)
        success = True
        try:
            await emit(
                SystemEvent(
                    event_type=EventType.SOURCE_SELECTED,
                    user_id=user_id,
                    data={
                        "field_label": label,
                        "value": value,
                        "source": source.value,
                        "context": "user_selection",
                    },
                    source_module="resolution.alternatives",
                )
            )
        except Exception:
            logger.exception("Failed to publish source selection for %r", label)
            success = False

        return SelectionResult(success=success, field_name=label, selected_value=value, selected_source=source)

    async def get_form_source_summary(self, user_id: uuid.UUID, labels: list[str]) -> SourceSummary:
        """Which documents contribute to a form, and to how many of its fields."""
        contribution = {doc_type: 0 for doc_type in DocumentType}
        fields_by_source: dict[DocumentType, list[str]] = {}

        for label in labels:
            groups = await self.get_field_variants(user_id, label)
            for source in groups:
                contribution[source] += 1
                fields_by_source.setdefault(source, []).append(label)

        return SourceSummary(
            sources=list(fields_by_source),
            fields_by_source=fields_by_source,
            source_contribution=contribution,
        )

    # ── Internals ────────────────────────────────────────────────────

    async def _report_conflicts(
        self,
        user_id: uuid.UUID,
        label: str,
        best: FieldVariant,
        groups: VariantGroups,
    ) -> None:
        """Emit AMBIGUITY_DETECTED when another source's top value differs materially."""
        threshold = settings.resolution.duplicate_similarity_threshold
        conflicting = [
            variants[0]
            for source, variants in groups.items()
            if source != best.source and value_similarity(best.value, variants[0].value) < threshold
        ]
        if not conflicting:
            return

        candidates = [
            {"value": v.value, "source": v.source.value, "confidence": v.confidence} for v in (best, *conflicting)
        ]
        logger.info("Ambiguity on %r for user %s: %d candidates", label, user_id, len(candidates))
        try:
            await emit(
                SystemEvent(
                    event_type=EventType.AMBIGUITY_DETECTED,
                    user_id=user_id,
                    data={"field_label": normalize_field_name(label), "candidates": candidates},
                    source_module="resolution.alternatives",
                )
            )
        except Exception:
            logger.exception("Failed to publish ambiguity for %r", label)
