"""SQLAlchemy ORM models for the document vault.

Import all models here so Base.metadata.create_all() discovers them.
"""

from __future__ import annotations

from vaultfill.models.base import Base
from vaultfill.models.enums import (
    AmbiguityStatus,
    DocumentStatus,
    DocumentType,
    FieldCategory,
    ResolutionStatus,
    SectionType,
)
from vaultfill.models.learned_field import LearnedField
from vaultfill.models.vault_ambiguity import VaultAmbiguity
from vaultfill.models.vault_document import VaultDocument
from vaultfill.models.vault_field import VaultField
from vaultfill.models.vault_section import VaultSection

__all__ = [
    # Base
    "Base",
    # Models
    "VaultDocument",
    "VaultSection",
    "VaultField",
    "VaultAmbiguity",
    "LearnedField",
    # Enums
    "DocumentType",
    "DocumentStatus",
    "SectionType",
    "AmbiguityStatus",
    "FieldCategory",
    "ResolutionStatus",
]
