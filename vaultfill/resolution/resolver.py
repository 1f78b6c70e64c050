"""Field resolver — the per-field state machine.

    UNRESOLVED → CLASSIFIED → SOURCE_FOUND | missing
               → VALUE_FOUND | missing → CONVERTED? → SAFETY_CHECKED
               → filled | unsafe | type_mismatch | low_confidence

Every outcome, including store outages, is returned as a FieldResolution;
nothing raises out of resolve_field / resolve_fields. Usage tracking is a
FIELD_FILLED event, so subscriber failures cannot touch the result.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from vaultfill.config import settings
from vaultfill.events import emit
from vaultfill.models.enums import DocumentType, FieldCategory, ResolutionStatus
from vaultfill.resolution.classifier import (
    FieldClassifier,
    default_classifier,
    match_standard_field,
    requested_metric,
)
from vaultfill.resolution.converter import convert, format_score
from vaultfill.resolution.extractor import extract_metric, extract_value
from vaultfill.resolution.rules import STANDARD_FIELDS
from vaultfill.resolution.safety import check_data_type, is_forbidden_crossing, validate
from vaultfill.resolution.sources import find_source
from vaultfill.schemas.events import EventType, SystemEvent
from vaultfill.schemas.resolution import (
    BatchResolution,
    BatchSummary,
    ExtractedValue,
    FieldClassification,
    FieldResolution,
    PriorityRule,
)
from vaultfill.vault.store import StoreError, VaultStore

logger = logging.getLogger(__name__)

_METRICS = ("cgpa", "percentage")


def stored_kind(extracted: ExtractedValue) -> str | None:
    """Canonical kind of the stored field a value came from."""
    if extracted.semantic_tag in STANDARD_FIELDS:
        return extracted.semantic_tag
    return match_standard_field(extracted.field_name)


def summarize(results: list[FieldResolution]) -> BatchSummary:
    """Counts and success rate of a batch."""
    total = len(results)
    filled = sum(1 for r in results if r.status == ResolutionStatus.FILLED)
    missing = sum(1 for r in results if r.status == ResolutionStatus.MISSING)
    unsafe = sum(1 for r in results if r.status == ResolutionStatus.UNSAFE)
    success_rate = round(filled / total * 100, 2) if total else 0.0
    return BatchSummary(total=total, filled=filled, missing=missing, unsafe=unsafe, success_rate=success_rate)


class FieldResolver:
    """Resolves form labels to vault values without user interaction."""

    def __init__(self, store: VaultStore, classifier: FieldClassifier | None = None) -> None:
        self._store = store
        self._classifier = classifier or default_classifier

    # ── Public API ───────────────────────────────────────────────────

    async def resolve_field(self, user_id: uuid.UUID, label: str) -> FieldResolution:
        """Resolve one label. Never raises."""
        try:
            result = await self._resolve(user_id, label)
        except Exception as exc:
            logger.exception("Resolution failed for %r (user=%s)", label, user_id)
            result = FieldResolution(
                form_field=label,
                status=ResolutionStatus.ERROR,
                reason=str(exc) or exc.__class__.__name__,
            )

        await self._publish(user_id, result)
        return result

    async def resolve_fields(self, user_id: uuid.UUID, labels: list[str]) -> BatchResolution:
        """Resolve labels independently and concurrently; results keep input order."""
        results = list(await asyncio.gather(*(self.resolve_field(user_id, label) for label in labels)))
        summary = summarize(results)
        logger.info(
            "Batch resolution for user %s: %d/%d filled (%.2f%%)",
            user_id,
            summary.filled,
            summary.total,
            summary.success_rate,
        )
        await self._emit(
            SystemEvent(
                event_type=EventType.BATCH_RESOLVED,
                user_id=user_id,
                data=summary.model_dump(),
                source_module="resolution.resolver",
            )
        )
        return BatchResolution(results=results, summary=summary)

    # ── State machine ────────────────────────────────────────────────

    async def _resolve(self, user_id: uuid.UUID, label: str) -> FieldResolution:
        if not label or not label.strip():
            return FieldResolution(form_field=label, status=ResolutionStatus.MISSING, reason="Empty field label")

        classification = self._classifier.classify(label)
        category = classification.category
        rule = classification.priority_rule
        logger.info(
            "Resolving %r: category=%s rule=%s",
            label,
            category.value,
            " → ".join(s.value for s in rule.sources),
        )

        remaining = rule.sources
        unavailable: DocumentType | None = None
        while True:
            source = await find_source(
                self._store, user_id, PriorityRule(primary=remaining[0], fallback=remaining[1:])
            )
            if source is None:
                reason = (
                    f"Source {unavailable.value} unavailable" if unavailable else "No document source available"
                )
                return FieldResolution(
                    form_field=label, status=ResolutionStatus.MISSING, category=category, reason=reason
                )

            try:
                extracted, converted = await self._extract(user_id, label, classification, source)
                break
            except StoreError as exc:
                # Source unavailable: keep probing the fallbacks after it
                logger.warning("Extraction from %s failed for %r: %s", source.value, label, exc)
                unavailable = source
                remaining = remaining[remaining.index(source) + 1 :]
                if not remaining:
                    return FieldResolution(
                        form_field=label,
                        status=ResolutionStatus.MISSING,
                        category=category,
                        reason=f"Source {source.value} unavailable",
                    )

        if extracted is None:
            return FieldResolution(
                form_field=label,
                status=ResolutionStatus.MISSING,
                source=source,
                category=category,
                reason=f"Field not found in {source.value}",
            )

        return self._check(label, category, extracted, converted)

    async def _extract(
        self,
        user_id: uuid.UUID,
        label: str,
        classification: FieldClassification,
        source: DocumentType,
    ) -> tuple[ExtractedValue | None, bool]:
        """Value for `label` in `source`, converting CGPA ↔ percentage within the source."""
        extracted = await extract_value(self._store, user_id, label, source)
        if classification.category != FieldCategory.ACADEMIC_PERCENTAGE:
            return extracted, False

        wanted = requested_metric(label)
        if extracted is None:
            extracted = await extract_metric(self._store, user_id, source, wanted)
        if extracted is None:
            other = next(m for m in _METRICS if m != wanted)
            extracted = await extract_metric(self._store, user_id, source, other)

        if extracted is None:
            return None, False

        kind = stored_kind(extracted)
        if kind not in _METRICS or kind == wanted:
            return extracted, False

        number = convert(f"{kind}_to_{wanted}", extracted.value)  # type: ignore[arg-type]
        if number is None:
            logger.warning("Cannot convert %r from %s to %s", extracted.value, kind, wanted)
            return None, False
        logger.info("Converted %s %s → %s %s", kind, extracted.value, wanted, format_score(number))
        return extracted.model_copy(update={"value": format_score(number)}), True

    def _check(
        self,
        label: str,
        category: FieldCategory,
        extracted: ExtractedValue,
        converted: bool,
    ) -> FieldResolution:
        """Safety, data type, cross-kind and confidence checks, in that order."""
        source = extracted.source

        if not validate(category, extracted.value, source, field_label=label):
            return FieldResolution(
                form_field=label,
                status=ResolutionStatus.UNSAFE,
                source=source,
                category=category,
                reason="Data validation failed",
            )

        requested = match_standard_field(label)
        if not check_data_type(requested, extracted.value):
            return FieldResolution(
                form_field=label,
                status=ResolutionStatus.TYPE_MISMATCH,
                source=source,
                category=category,
                reason=f"Value does not match the {requested} format",
            )

        stored = stored_kind(extracted)
        if is_forbidden_crossing(requested, stored):
            return FieldResolution(
                form_field=label,
                status=ResolutionStatus.UNSAFE,
                source=source,
                category=category,
                reason=f"Stored {stored} value cannot fill {requested} field",
            )

        threshold = settings.resolution.high_confidence_threshold
        if extracted.confidence < threshold:
            return FieldResolution(
                form_field=label,
                status=ResolutionStatus.LOW_CONFIDENCE,
                source=source,
                confidence=extracted.confidence,
                category=category,
                reason=f"Confidence {extracted.confidence} below {threshold} threshold",
            )

        logger.info("Resolved %r = %r from %s", label, extracted.value, source.value)
        return FieldResolution(
            form_field=label,
            status=ResolutionStatus.FILLED,
            value=extracted.value,
            source=source,
            confidence=extracted.confidence,
            field_status=ResolutionStatus.CONVERTED if converted else ResolutionStatus.FILLED,
            category=category,
        )

    # ── Side effects ─────────────────────────────────────────────────

    async def _publish(self, user_id: uuid.UUID, result: FieldResolution) -> None:
        if result.is_filled:
            event = SystemEvent(
                event_type=EventType.FIELD_FILLED,
                user_id=user_id,
                data={
                    "field_label": result.form_field,
                    "value": result.value,
                    "source": result.source.value if result.source else None,
                    "confidence": result.confidence,
                    "field_status": result.field_status.value if result.field_status else None,
                    "context": "autofill",
                },
                source_module="resolution.resolver",
            )
        else:
            event = SystemEvent(
                event_type=EventType.FIELD_UNRESOLVED,
                user_id=user_id,
                data={"field_label": result.form_field, "status": result.status.value, "reason": result.reason},
                source_module="resolution.resolver",
            )
        await self._emit(event)

    async def _emit(self, event: SystemEvent) -> None:
        try:
            await emit(event)
        except Exception:
            logger.exception("Failed to emit %s", event.event_type.value)
