"""Multi-source field resolution engine.

label → classifier → source resolver → extractor → converter → safety → status.
"""

from vaultfill.resolution.alternatives import AlternativesService, normalize_field_name
from vaultfill.resolution.classifier import FieldClassifier, classify, is_family_label, match_standard_field
from vaultfill.resolution.resolver import FieldResolver

__all__ = [
    "AlternativesService",
    "FieldClassifier",
    "FieldResolver",
    "classify",
    "is_family_label",
    "match_standard_field",
    "normalize_field_name",
]
