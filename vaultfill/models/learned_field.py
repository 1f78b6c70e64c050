"""LearnedField model — how often a user fills a field and with which values."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from vaultfill.models.base import Base, TimestampMixin


class LearnedField(TimestampMixin, Base):
    """Usage statistics for one (user, field_name)."""

    __tablename__ = "learned_fields"
    __table_args__ = (Index("ix_learned_fields_user_usage", "user_id", "usage_count"),)

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    field_name: Mapped[str] = mapped_column(String(200), nullable=False)
    usage_count: Mapped[int] = mapped_column(default=0, nullable=False)
    extracted_values: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, default=list, comment="[{value, frequency}]"
    )
    contexts: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<LearnedField field={self.field_name} usage={self.usage_count}>"
