"""Safety validator — rejects values that would be wrong in the requested field.

Never auto-corrects: a value either passes or the field is reported unsafe.
"""

from __future__ import annotations

import logging
import re

from vaultfill.config import settings
from vaultfill.models.enums import DocumentType, FieldCategory
from vaultfill.resolution.classifier import academic_level, match_standard_field
from vaultfill.resolution.rules import DATA_TYPE_PATTERNS, FORBIDDEN_CROSSINGS

logger = logging.getLogger(__name__)

_BARE_DATE_RE = re.compile(
    r"^\s*(\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}|\d{4}[-/.]\d{1,2}[-/.]\d{1,2})\s*$"
)


def _address_is_safe(value: str) -> bool:
    if "@" in value:
        logger.warning("Unsafe address value: looks like an email")
        return False
    if _BARE_DATE_RE.match(value):
        logger.warning("Unsafe address value: bare date")
        return False
    if len(value.strip()) <= settings.resolution.address_min_length:
        logger.warning("Unsafe address value: too short (%d chars)", len(value.strip()))
        return False
    return True


def validate(
    category: FieldCategory,
    value: str,
    source: DocumentType,
    *,
    field_label: str | None = None,
) -> bool:
    """Check a resolved value against the domain safety rules.

    - Address fields: no "@", not a bare date, longer than the minimum length.
    - Academic fields: the level named in the label (10th, 12th/inter, degree)
      must be the level of the source document.
    """
    label = field_label or ""
    if match_standard_field(label) == "address" and not _address_is_safe(value):
        return False

    if category == FieldCategory.ACADEMIC_PERCENTAGE:
        level = academic_level(label)
        if level is not None and level != source:
            logger.warning("Unsafe academic value: %r must come from %s, got %s", label, level.value, source.value)
            return False

    return True


def check_data_type(canonical: str | None, value: str) -> bool:
    """Whether `value` fits the data-type pattern of a canonical field.

    Fields without a pattern always pass.
    """
    if canonical is None:
        return True
    pattern = DATA_TYPE_PATTERNS.get(canonical)
    if pattern is None:
        return True
    return pattern.match(value.strip()) is not None


def is_forbidden_crossing(requested: str | None, stored: str | None) -> bool:
    """True when a stored field of one kind would fill a field of an incompatible kind
    (an email into an address, a date into a name)."""
    if requested is None or stored is None or requested == stored:
        return False
    return requested in FORBIDDEN_CROSSINGS.get(stored, frozenset())
