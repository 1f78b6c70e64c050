"""Compiled-in resolution policy: phrase tables, priority rules, field patterns.

Everything here is immutable (tuples, frozen models, MappingProxyType) and
loaded once at import. Order inside PHRASE_RULES and STANDARD_FIELD_PATTERNS
is part of the contract: substring matching means a specific phrase
("father's name") must be tested before a generic one ("name").
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import NamedTuple

from vaultfill.models.enums import DocumentType, FieldCategory
from vaultfill.schemas.resolution import PriorityRule

A = DocumentType.AADHAAR
P = DocumentType.PAN
PP = DocumentType.PASSPORT
T = DocumentType.TENTH
I = DocumentType.INTER  # noqa: E741
D = DocumentType.DEGREE


class PhraseRule(NamedTuple):
    """A (phrase, category, priority rule) row of the classifier table."""

    phrase: str
    category: FieldCategory
    rule: PriorityRule


def _rule(primary: DocumentType, *fallback: DocumentType) -> PriorityRule:
    return PriorityRule(primary=primary, fallback=tuple(fallback))


# ── Category order ───────────────────────────────────────────────────

CATEGORY_ORDER: tuple[FieldCategory, ...] = (
    FieldCategory.IDENTITY,
    FieldCategory.ACADEMIC_PERCENTAGE,
    FieldCategory.NAME,
)

# ── Classifier phrase table ──────────────────────────────────────────

_IDENTITY = FieldCategory.IDENTITY
_ACADEMIC = FieldCategory.ACADEMIC_PERCENTAGE
_NAME = FieldCategory.NAME

PHRASE_RULES: tuple[PhraseRule, ...] = (
    # Identity: Aadhaar is authoritative
    PhraseRule("date of birth", _IDENTITY, _rule(A, T, I, PP, P)),
    PhraseRule("dob", _IDENTITY, _rule(A, T, I, PP, P)),
    PhraseRule("address", _IDENTITY, _rule(A)),  # Aadhaar only
    PhraseRule("gender", _IDENTITY, _rule(A, PP, P)),
    PhraseRule("aadhaar number", _IDENTITY, _rule(A)),
    PhraseRule("pan number", _IDENTITY, _rule(P)),
    PhraseRule("passport number", _IDENTITY, _rule(PP)),
    # Academic: exactly one level document, never a fallback
    PhraseRule("10th percentage", _ACADEMIC, _rule(T)),
    PhraseRule("tenth percentage", _ACADEMIC, _rule(T)),
    PhraseRule("10th marks", _ACADEMIC, _rule(T)),
    PhraseRule("12th percentage", _ACADEMIC, _rule(I)),
    PhraseRule("inter percentage", _ACADEMIC, _rule(I)),
    PhraseRule("intermediate percentage", _ACADEMIC, _rule(I)),
    PhraseRule("12th marks", _ACADEMIC, _rule(I)),
    PhraseRule("degree percentage", _ACADEMIC, _rule(D)),
    PhraseRule("degree cgpa", _ACADEMIC, _rule(D)),
    PhraseRule("btech cgpa", _ACADEMIC, _rule(D)),
    # Names: family names strictly before the generic "name"
    PhraseRule("father's name", _NAME, _rule(A, P, PP)),
    PhraseRule("father name", _NAME, _rule(A, P, PP)),
    PhraseRule("mother's name", _NAME, _rule(A, PP)),
    PhraseRule("mother name", _NAME, _rule(A, PP)),
    PhraseRule("guardian name", _NAME, _rule(A, PP)),
    PhraseRule("student name", _NAME, _rule(A, T, I)),
    PhraseRule("applicant name", _NAME, _rule(A, PP, P)),
    PhraseRule("full name", _NAME, _rule(A, PP, P, T, I, D)),
    PhraseRule("name", _NAME, _rule(A, PP, P, T, I, D)),
)

DEFAULT_RULE = _rule(A, T, I, D, PP, P)

# ── Academic levels ──────────────────────────────────────────────────

# Label keyword → the only document allowed to answer for that level
ACADEMIC_LEVEL_KEYWORDS: tuple[tuple[re.Pattern[str], DocumentType], ...] = (
    (re.compile(r"\b(10th|tenth|ssc)\b", re.IGNORECASE), T),
    (re.compile(r"\b(12th|inter|intermediate|hsc)\b", re.IGNORECASE), I),
    (re.compile(r"\b(degree|btech|b\.tech|graduation)\b", re.IGNORECASE), D),
)

# ── Family names ─────────────────────────────────────────────────────

FAMILY_LABEL_RE = re.compile(r"father|mother|parent|guardian|paternal|maternal", re.IGNORECASE)

FATHER_FIELD_RE = re.compile(r"father'?s?\s*name|paternal\s*name", re.IGNORECASE)
MOTHER_FIELD_RE = re.compile(r"mother'?s?\s*name|maternal\s*name", re.IGNORECASE)
GUARDIAN_FIELD_RE = re.compile(r"guardian'?s?\s*name", re.IGNORECASE)

# Which relative a stored field is about, whatever it records
FATHER_RE = re.compile(r"father|paternal", re.IGNORECASE)
MOTHER_RE = re.compile(r"mother|maternal", re.IGNORECASE)
GUARDIAN_RE = re.compile(r"guardian", re.IGNORECASE)

# Relative words stripped from a label to find what it asks about
RELATIVE_WORD_RE = re.compile(
    r"\b(?:father|mother|parent|guardian|paternal|maternal|spouse|sibling|family)(?:'?s)?\b",
    re.IGNORECASE,
)
NAME_WORD_RE = re.compile(r"\bname\b", re.IGNORECASE)
LABEL_STOPWORDS: frozenset[str] = frozenset({"of", "the", "and", "s", "your", "details"})

FAMILY_DATA_KEYWORDS: tuple[str, ...] = (
    "father",
    "mother",
    "spouse",
    "sibling",
    "parent",
    "family",
    "guardian",
)

# ── Standard fields ──────────────────────────────────────────────────

STANDARD_FIELDS: MappingProxyType[str, str] = MappingProxyType({
    "student_name": "Person full name (alphabet only)",
    "father_name": "Father's name (alphabet only)",
    "mother_name": "Mother's name (alphabet only)",
    "dob": "Birth date (DD/MM/YYYY or YYYY-MM-DD format)",
    "email": "Email address (must contain @)",
    "phone": "Phone number (digits only, 10-15 length)",
    "address": "Physical location address",
    "cgpa": "CGPA score (decimal 0.0-10.0)",
    "percentage": "Percentage/Marks (decimal 0-100)",
    "gender": "Gender (M/F/Male/Female/Other)",
    "aadhaar": "Aadhaar Number (12 digits)",
    "pan": "PAN Card (10 alphanumeric characters)",
    "roll_number": "Roll / registration number",
    "institution_name": "School, college or university",
})

# Ordered: family names first, then generic names, then everything else
STANDARD_FIELD_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), key)
    for pattern, key in (
        (r"father.*\bname\b|paternal\s*name", "father_name"),
        (r"mother.*\bname\b|maternal\s*name", "mother_name"),
        (r"full name|student name|applicant name|candidate name|your name", "student_name"),
        (r"^name$", "student_name"),
        (r"\bdob\b|d\.o\.b|date.*birth|birth ?date", "dob"),
        (r"e-?mail|mail address", "email"),
        (r"phone|mobile|contact|\bcell\b", "phone"),
        (r"address|\bplace of residence\b", "address"),
        (r"cgpa|\bgpa\b|grade.*point|sgpa", "cgpa"),
        (r"percentage|marks|score ?%|percent", "percentage"),
        (r"gender|\bsex\b", "gender"),
        (r"aadhaa?r|\buid\b", "aadhaar"),
        (r"\bpan\b", "pan"),
        (r"roll.*number|roll no", "roll_number"),
        (r"school|college|university|institution", "institution_name"),
    )
)

# Metric lookups used for unit conversion inside one source
METRIC_PATTERNS: MappingProxyType[str, re.Pattern[str]] = MappingProxyType({
    "cgpa": re.compile(r"cgpa|\bgpa\b|grade.*point|sgpa", re.IGNORECASE),
    "percentage": re.compile(r"percentage|percent|marks|%", re.IGNORECASE),
})

# ── Data-type validation ─────────────────────────────────────────────

_PERSON_NAME = re.compile(r"^[a-zA-Z\s'.-]{2,100}$")

DATA_TYPE_PATTERNS: MappingProxyType[str, re.Pattern[str]] = MappingProxyType({
    "student_name": _PERSON_NAME,
    "father_name": _PERSON_NAME,
    "mother_name": _PERSON_NAME,
    "dob": re.compile(
        r"^(\d{1,2}[/.-]\d{1,2}[/.-]\d{4}|\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[\s/-]*(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec))",
        re.IGNORECASE,
    ),
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "phone": re.compile(r"^\+?[0-9]{10,15}$"),
    "address": re.compile(r"^[\w\s.,#/()'&:-]{5,300}$"),
    "cgpa": re.compile(r"^([0-9](\.[0-9]{1,2})?|10(\.0{1,2})?)$"),
    "percentage": re.compile(r"^([0-9]{1,2}(\.[0-9]{1,2})?|100(\.0{1,2})?)%?$"),
    "gender": re.compile(r"^(m|f|male|female|other|transgender)$", re.IGNORECASE),
    "aadhaar": re.compile(r"^[0-9]{4}\s?[0-9]{4}\s?[0-9]{4}$"),
    "pan": re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE),
})

# Stored-field kind → requested kinds it must never be used for
FORBIDDEN_CROSSINGS: MappingProxyType[str, frozenset[str]] = MappingProxyType({
    "email": frozenset({"address", "dob", "phone", "student_name", "father_name", "mother_name"}),
    "phone": frozenset({"email", "address", "student_name", "father_name", "mother_name", "dob"}),
    "dob": frozenset({"email", "phone", "student_name", "father_name", "mother_name", "address"}),
    "address": frozenset({"email", "phone", "dob", "student_name", "father_name", "mother_name"}),
})
