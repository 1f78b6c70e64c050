"""Field classifier — maps a free-text form label to a category and priority rule.

Deterministic, no store access. Matching is substring containment against
the ordered PHRASE_RULES table; the first hit wins.
"""

from __future__ import annotations

import logging
import re

from vaultfill.models.enums import DocumentType, FieldCategory
from vaultfill.resolution.rules import (
    ACADEMIC_LEVEL_KEYWORDS,
    CATEGORY_ORDER,
    DEFAULT_RULE,
    FAMILY_LABEL_RE,
    LABEL_STOPWORDS,
    NAME_WORD_RE,
    PHRASE_RULES,
    RELATIVE_WORD_RE,
    STANDARD_FIELD_PATTERNS,
    PhraseRule,
)
from vaultfill.schemas.resolution import FieldClassification

logger = logging.getLogger(__name__)

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'", "´": "'"})


def prepare_label(label: str) -> str:
    """Lower-case and trim a label, unifying typographic apostrophes and spaces."""
    return " ".join(label.translate(_APOSTROPHES).lower().split())


class FieldClassifier:
    """Classifies labels against an injected, ordered phrase table.

    The table is evaluated category by category in `category_order`, and
    within a category in table order.
    """

    def __init__(
        self,
        phrase_rules: tuple[PhraseRule, ...] = PHRASE_RULES,
        category_order: tuple[FieldCategory, ...] = CATEGORY_ORDER,
    ) -> None:
        self._ordered: tuple[PhraseRule, ...] = tuple(
            entry for category in category_order for entry in phrase_rules if entry.category == category
        )

    @property
    def ordered_rules(self) -> tuple[PhraseRule, ...]:
        return self._ordered

    def classify(self, label: str) -> FieldClassification:
        """Return the category and priority rule for a form label."""
        lowered = prepare_label(label)

        for entry in self._ordered:
            if entry.phrase in lowered:
                logger.debug("Label %r matched phrase %r (%s)", label, entry.phrase, entry.category.value)
                return FieldClassification(
                    category=entry.category,
                    priority_rule=entry.rule,
                    matched_phrase=entry.phrase,
                )

        logger.debug("Label %r has no phrase match, using flexible rule", label)
        return FieldClassification(category=FieldCategory.FLEXIBLE, priority_rule=DEFAULT_RULE)


default_classifier = FieldClassifier()


def classify(label: str) -> FieldClassification:
    """Classify a label with the compiled-in phrase table."""
    return default_classifier.classify(label)


def match_standard_field(label: str) -> str | None:
    """Canonical field key (e.g. "dob", "father_name") for a label, or None."""
    cleaned = prepare_label(label).rstrip(":").strip()
    if not cleaned:
        return None
    for pattern, key in STANDARD_FIELD_PATTERNS:
        if pattern.search(cleaned):
            return key
    return None


def is_family_label(label: str) -> bool:
    """True for father/mother/parent/guardian labels."""
    return FAMILY_LABEL_RE.search(label) is not None


def label_terms(label: str) -> tuple[str, ...]:
    """Words of a label other than the relative it names.

    >>> label_terms("Father's Occupation")
    ('occupation',)
    """
    stripped = RELATIVE_WORD_RE.sub(" ", prepare_label(label))
    return tuple(word for word in re.findall(r"[a-z0-9]+", stripped) if word not in LABEL_STOPWORDS)


def is_family_name_label(label: str) -> bool:
    """A family label asking for the relative's name ("Father's Name", "Guardian")."""
    if not is_family_label(label):
        return False
    return NAME_WORD_RE.search(label) is not None or not label_terms(label)


def academic_level(label: str) -> DocumentType | None:
    """The document type that owns the academic level named in a label."""
    for pattern, document_type in ACADEMIC_LEVEL_KEYWORDS:
        if pattern.search(label):
            return document_type
    return None


def requested_metric(label: str) -> str:
    """Which academic metric a label asks for: "cgpa" or "percentage"."""
    lowered = prepare_label(label)
    if "cgpa" in lowered or "gpa" in lowered or "grade point" in lowered:
        return "cgpa"
    return "percentage"
