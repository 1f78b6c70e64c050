"""VaultDocument model — an uploaded document and its extraction status."""

from __future__ import annotations

import uuid

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from vaultfill.models.base import Base, TimestampMixin


class VaultDocument(TimestampMixin, Base):
    """A document uploaded into a user's vault.

    Only documents with status COMPLETED are eligible as resolution sources.
    """

    __tablename__ = "vault_documents"
    __table_args__ = (Index("ix_vault_documents_user_type", "user_id", "document_type"),)

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="DocumentType enum value")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")

    file_name: Mapped[str | None] = mapped_column(String(255))
    confidence: Mapped[float | None] = mapped_column(Float, comment="0.0–1.0 overall extraction confidence")
    extracted_fields_count: Mapped[int | None] = mapped_column()
    processing_error: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<VaultDocument id={self.id} type={self.document_type} status={self.status}>"
