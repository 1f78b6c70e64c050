"""Normalized-text similarity for field-name matching and duplicate detection.

Similarity is 1 - levenshtein(a, b) / max(len(a), len(b)) over normalized
text, computed with rapidfuzz.
"""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

# Default only; callers pass settings.resolution.duplicate_similarity_threshold
SIMILARITY_THRESHOLD = 0.85

# Score given when one normalized label contains the other
CONTAINMENT_SIMILARITY = 0.85

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


def normalize_value(value: str) -> str:
    """Normalize a stored value for comparison: trim, lower, collapse spaces, drop punctuation."""
    text = _WHITESPACE_RE.sub(" ", value.strip().lower())
    return _NON_WORD_RE.sub("", text)


def normalize_label(text: str | None) -> str:
    """Normalize a field label: lower-case alphanumerics and single spaces."""
    if not text:
        return ""
    cleaned = _NON_ALNUM_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def similarity(a: str, b: str) -> float:
    """Levenshtein similarity in [0, 1] of two already-normalized strings."""
    return Levenshtein.normalized_similarity(a, b)


def value_similarity(value1: str, value2: str) -> float:
    """Similarity of two raw vault values after normalization."""
    return similarity(normalize_value(value1), normalize_value(value2))


def detect_duplicates(value1: str, value2: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """True when two values are close enough to be the same fact."""
    return value_similarity(value1, value2) > threshold


def label_similarity(label1: str, label2: str) -> float:
    """Similarity of two field labels.

    Exact normalized match scores 1.0, containment scores
    CONTAINMENT_SIMILARITY, anything else falls back to Levenshtein.
    """
    norm1 = normalize_label(label1)
    norm2 = normalize_label(label2)

    if norm1 == norm2:
        return 1.0
    if not norm1 or not norm2:
        return 0.0
    if norm1 in norm2 or norm2 in norm1:
        return CONTAINMENT_SIMILARITY
    return similarity(norm1, norm2)
