"""VaultSection model — groups vault fields by document-type category."""

from __future__ import annotations

import uuid

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from vaultfill.models.base import Base, TimestampMixin


class VaultSection(TimestampMixin, Base):
    """One section per (user, section_type)."""

    __tablename__ = "vault_sections"
    __table_args__ = (UniqueConstraint("user_id", "section_type", name="uq_vault_sections_user_type"),)

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    section_type: Mapped[str] = mapped_column(String(30), nullable=False, comment="SectionType enum value")

    def __repr__(self) -> str:
        return f"<VaultSection user={self.user_id} type={self.section_type}>"
