"""VaultAmbiguity model — conflicting values for the same field across sources."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from vaultfill.models.base import Base, TimestampMixin


class VaultAmbiguity(TimestampMixin, Base):
    """A detected conflict awaiting manual resolution."""

    __tablename__ = "vault_ambiguities"
    __table_args__ = (Index("ix_vault_ambiguities_user_status", "user_id", "resolution_status"),)

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    field_name: Mapped[str] = mapped_column(String(200), nullable=False)
    candidates: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, default=list, comment="[{value, source, confidence}]"
    )
    resolution_status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    resolved_value: Mapped[str | None] = mapped_column(Text)
    resolution_notes: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<VaultAmbiguity field={self.field_name} status={self.resolution_status}>"
