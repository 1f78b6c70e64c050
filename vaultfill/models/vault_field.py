"""VaultField model — a single extracted value with provenance.

Fields are written by ingestion and only read by resolution. Confidence is
always stored on the 0.0–1.0 scale.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Float, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from vaultfill.models.base import Base, TimestampMixin


class VaultField(TimestampMixin, Base):
    """A stored (field, value, source, confidence) record."""

    __tablename__ = "vault_fields"
    __table_args__ = (Index("ix_vault_fields_user_source", "user_id", "extracted_from"),)

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    section_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vault_sections.id"), index=True
    )
    document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("vault_documents.id"))

    field_name: Mapped[str] = mapped_column(String(200), nullable=False, comment="Raw label as extracted")
    field_value: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, comment="0.0–1.0 confidence score")
    extracted_from: Mapped[str | None] = mapped_column(String(20), comment="DocumentType enum value")
    semantic_tag: Mapped[str | None] = mapped_column(String(100), comment="Canonical field name, if known")
    is_family_data: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<VaultField field={self.field_name} source={self.extracted_from} confidence={self.confidence}>"
