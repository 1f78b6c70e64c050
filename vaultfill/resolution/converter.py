"""CGPA ↔ percentage conversion.

percentage = CGPA × 9.5 and CGPA = percentage ÷ 9.5, rounded to two
decimals. Non-numeric input yields None, which callers treat as missing,
never as zero.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal

from vaultfill.config import settings

ConversionKind = Literal["cgpa_to_percentage", "percentage_to_cgpa"]

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_TWO_PLACES = Decimal("0.01")


def parse_numeric(value: str | float | int | None) -> Decimal | None:
    """Leading number of a stored score ("8.5/10" → 8.5, "80.75%" → 80.75)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = Decimal(str(value))
        return number if number.is_finite() else None
    head = value.strip().split("/")[0]
    match = _NUMBER_RE.search(head)
    if match is None:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def _quantize(value: Decimal) -> float:
    return float(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def cgpa_to_percentage(value: str | float | int | None, factor: float | None = None) -> float | None:
    """CGPA on a 10-point scale → percentage."""
    number = parse_numeric(value)
    if number is None:
        return None
    multiplier = Decimal(str(factor if factor is not None else settings.resolution.cgpa_percentage_factor))
    return _quantize(number * multiplier)


def percentage_to_cgpa(value: str | float | int | None, factor: float | None = None) -> float | None:
    """Percentage → CGPA on a 10-point scale."""
    number = parse_numeric(value)
    if number is None:
        return None
    divisor = Decimal(str(factor if factor is not None else settings.resolution.cgpa_percentage_factor))
    return _quantize(number / divisor)


CONVERSIONS = {
    "cgpa_to_percentage": cgpa_to_percentage,
    "percentage_to_cgpa": percentage_to_cgpa,
}


def convert(kind: ConversionKind, value: str | float | int | None) -> float | None:
    """Dispatch a conversion by name.

    Raises:
        KeyError: If `kind` is not a known conversion.
    """
    return CONVERSIONS[kind](value)


def format_score(value: float) -> str:
    """Render a converted score the way vault values are stored ("80.75")."""
    return f"{value:.2f}"
