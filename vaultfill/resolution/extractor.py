"""Value extractor — picks the stored value that answers a label within one source.

Family-name labels are strict: only stored fields named like
"Father's Name" / "Paternal Name" (and the mother/guardian equivalents)
may answer them, and there is no semantic fallback. Other family labels
("Father's Occupation") need the same relative and the rest of the label
in the field name. A label never sees data about a relative it does not
mention, so a generic "Name" never reads "Father's Name".
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable

from vaultfill.config import settings
from vaultfill.models.enums import DocumentType
from vaultfill.resolution.classifier import (
    is_family_label,
    is_family_name_label,
    label_terms,
    match_standard_field,
    prepare_label,
)
from vaultfill.resolution.rules import (
    FAMILY_DATA_KEYWORDS,
    FATHER_FIELD_RE,
    FATHER_RE,
    GUARDIAN_FIELD_RE,
    GUARDIAN_RE,
    METRIC_PATTERNS,
    MOTHER_FIELD_RE,
    MOTHER_RE,
)
from vaultfill.schemas.resolution import ExtractedValue
from vaultfill.schemas.vault import VaultFieldRecord
from vaultfill.vault.store import VaultStore

logger = logging.getLogger(__name__)


def family_field_patterns(label: str) -> tuple[re.Pattern[str], ...]:
    """Stored-field-name patterns allowed to answer a family-name label."""
    lowered = label.lower()
    if "father" in lowered or "paternal" in lowered:
        return (FATHER_FIELD_RE,)
    if "mother" in lowered or "maternal" in lowered:
        return (MOTHER_FIELD_RE,)
    if "guardian" in lowered:
        return (GUARDIAN_FIELD_RE,)
    return (FATHER_FIELD_RE, MOTHER_FIELD_RE, GUARDIAN_FIELD_RE)


def relative_patterns(label: str) -> tuple[re.Pattern[str], ...]:
    """Patterns for the relative a family label is about; "parent" means any."""
    lowered = label.lower()
    if "father" in lowered or "paternal" in lowered:
        return (FATHER_RE,)
    if "mother" in lowered or "maternal" in lowered:
        return (MOTHER_RE,)
    if "guardian" in lowered:
        return (GUARDIAN_RE,)
    return (FATHER_RE, MOTHER_RE, GUARDIAN_RE)


def family_field_matcher(label: str) -> Callable[[VaultFieldRecord], bool]:
    """Predicate over stored fields that may answer a family label.

    A name label accepts only possessive-name fields. Any other family
    label needs the same relative plus every remaining label word in the
    field name, so "Father's Occupation" never reads "Father's Name".
    """
    if is_family_name_label(label):
        patterns = family_field_patterns(label)
        return lambda r: any(p.search(r.field_name) for p in patterns)

    relatives = relative_patterns(label)
    terms = label_terms(label)

    def matches(record: VaultFieldRecord) -> bool:
        name = prepare_label(record.field_name)
        return any(p.search(name) for p in relatives) and all(term in name for term in terms)

    return matches


def family_keywords(text: str) -> set[str]:
    lowered = text.lower()
    return {keyword for keyword in FAMILY_DATA_KEYWORDS if keyword in lowered}


def is_family_field(record: VaultFieldRecord, label: str = "") -> bool:
    """Whether a stored field holds a relative's data that `label` does not ask about.

    "Spouse Name" may answer a "Spouse Name" label but never a plain "Name".
    """
    keywords = family_keywords(record.field_name)
    if not keywords:
        return record.is_family_data
    return not keywords <= family_keywords(label)


def _latest(records: Iterable[VaultFieldRecord]) -> VaultFieldRecord | None:
    """Most recent record; higher confidence breaks ties."""
    ranked = sorted(records, key=lambda r: (r.created_at, r.confidence), reverse=True)
    return ranked[0] if ranked else None


def _best_name_match(label: str, records: list[VaultFieldRecord]) -> VaultFieldRecord | None:
    """Exact field-name matches win over containment matches."""
    exact = [r for r in records if prepare_label(r.field_name).rstrip(":") == label]
    return _latest(exact) or _latest(records)


def _to_extracted(record: VaultFieldRecord, source: DocumentType) -> ExtractedValue:
    return ExtractedValue(
        value=record.field_value,
        confidence=record.confidence,
        source=source,
        field_name=record.field_name,
        field_id=record.id,
        semantic_tag=record.semantic_tag,
    )


async def extract_value(
    store: VaultStore,
    user_id: uuid.UUID,
    label: str,
    source: DocumentType,
) -> ExtractedValue | None:
    """Best stored value for `label` among fields extracted from `source`.

    Raises:
        StoreError: If the store query fails.
    """
    cfg = settings.resolution
    cleaned = prepare_label(label).rstrip(":").strip()
    if not cleaned:
        return None

    candidates = await store.find_fields(user_id, source=source, min_confidence=cfg.semantic_confidence_threshold)
    confident = [r for r in candidates if r.confidence >= cfg.high_confidence_threshold]

    if is_family_label(cleaned):
        matcher = family_field_matcher(cleaned)
        record = _best_name_match(cleaned, [r for r in confident if matcher(r)])
        if record is None:
            logger.debug("No strict family field for %r in %s", label, source.value)
            return None
        return _to_extracted(record, source)

    own = [r for r in candidates if not is_family_field(r, cleaned)]
    label_re = re.compile(re.escape(cleaned), re.IGNORECASE)

    primary = [r for r in own if r.confidence >= cfg.high_confidence_threshold and label_re.search(r.field_name)]
    record = _best_name_match(cleaned, primary)
    if record is not None:
        return _to_extracted(record, source)

    canonical = match_standard_field(cleaned)
    semantic = [
        r
        for r in own
        if label_re.search(r.field_name)
        or (r.semantic_tag is not None and (label_re.search(r.semantic_tag) or r.semantic_tag == canonical))
    ]
    record = _latest(semantic)
    if record is None:
        logger.debug("Field %r not found in %s", label, source.value)
        return None
    logger.debug("Field %r matched semantically to %r in %s", label, record.field_name, source.value)
    return _to_extracted(record, source)


async def extract_metric(
    store: VaultStore,
    user_id: uuid.UUID,
    source: DocumentType,
    metric: str,
) -> ExtractedValue | None:
    """Stored academic metric ("cgpa" or "percentage") within one source.

    Raises:
        KeyError: If `metric` is unknown.
        StoreError: If the store query fails.
    """
    pattern = METRIC_PATTERNS[metric]
    candidates = await store.find_fields(
        user_id, source=source, min_confidence=settings.resolution.semantic_confidence_threshold
    )
    matches = [
        r
        for r in candidates
        if not is_family_field(r) and (r.semantic_tag == metric or pattern.search(r.field_name))
    ]
    record = _latest(matches)
    return _to_extracted(record, source) if record is not None else None
