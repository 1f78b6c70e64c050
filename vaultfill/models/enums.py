"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class DocumentType(str, Enum):
    """Document sources that can populate the vault."""

    AADHAAR = "AADHAAR"
    PAN = "PAN"
    PASSPORT = "PASSPORT"
    TENTH = "TENTH"
    INTER = "INTER"
    DEGREE = "DEGREE"


class DocumentStatus(str, Enum):
    """Ingestion lifecycle of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"  # only state eligible for resolution
    FAILED = "FAILED"


class SectionType(str, Enum):
    """Vault sections. Each document type routes into exactly one."""

    PERSONAL_MASTER = "PERSONAL_MASTER"
    AADHAAR_SECTION = "AADHAAR_SECTION"
    PASSPORT_SECTION = "PASSPORT_SECTION"
    PAN_SECTION = "PAN_SECTION"
    EDUCATION_DEGREE = "EDUCATION_DEGREE"
    EDUCATION_INTER = "EDUCATION_INTER"
    EDUCATION_10TH = "EDUCATION_10TH"


class AmbiguityStatus(str, Enum):
    """Manual resolution state of a detected value conflict."""

    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    IGNORED = "IGNORED"


class FieldCategory(str, Enum):
    """Semantic category of a form-field label."""

    IDENTITY = "identity"
    ACADEMIC_PERCENTAGE = "academic_percentage"
    NAME = "name"
    FLEXIBLE = "flexible"


class ResolutionStatus(str, Enum):
    """Outcome of resolving one form field.

    CONVERTED only ever appears as `field_status`, next to status FILLED.
    """

    FILLED = "filled"
    CONVERTED = "converted"
    MISSING = "missing"
    UNSAFE = "unsafe"
    LOW_CONFIDENCE = "low_confidence"
    TYPE_MISMATCH = "type_mismatch"
    ERROR = "error"
