"""SystemEvent schema — the event type that carries side effects out of resolution.

Resolution and ingestion emit SystemEvents. Subscribers (LearningTracker,
AmbiguityTracker) consume them asynchronously, so a tracking failure can
never change a resolution result.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Everything the vault publishes on the event bus."""

    # Document ingestion
    DOCUMENT_REGISTERED = "document.registered"
    DOCUMENT_PROCESSING = "document.processing"
    DOCUMENT_COMPLETED = "document.completed"
    DOCUMENT_FAILED = "document.failed"

    # Resolution
    FIELD_FILLED = "resolution.field_filled"
    FIELD_UNRESOLVED = "resolution.field_unresolved"
    BATCH_RESOLVED = "resolution.batch_resolved"

    # Alternatives / user choice
    SOURCE_SELECTED = "alternatives.source_selected"

    # Ambiguity
    AMBIGUITY_DETECTED = "ambiguity.detected"
    AMBIGUITY_RESOLVED = "ambiguity.resolved"


class SystemEvent(BaseModel):
    """Event flowing from the resolution core to its trackers.

    `data` carries the field label, value and source for resolution events,
    and the document id, type and status for ingestion events. LearningTracker
    consumes fills and selections, AmbiguityTracker consumes detections.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    user_id: uuid.UUID | None = None

    data: dict[str, Any] = Field(default_factory=dict)

    source_module: str | None = Field(default=None, description="Publishing module, e.g. resolution.resolver")

    model_config = {"frozen": True}
