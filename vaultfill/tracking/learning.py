"""Learning tracker — records which values a user actually puts into fields.

Subscribed to FIELD_FILLED (automatic fills) and SOURCE_SELECTED (user
overrides). Each event increments the field's usage count and the
frequency of the value used.

Failures are logged and never reach the event system.
"""

from __future__ import annotations

import logging

from vaultfill.schemas.events import EventType, SystemEvent
from vaultfill.vault.store import VaultStore

logger = logging.getLogger(__name__)


class LearningTracker:
    """Turns fill and selection events into LearnedField usage statistics."""

    watched_types: list[EventType] = [EventType.FIELD_FILLED, EventType.SOURCE_SELECTED]

    def __init__(self, store: VaultStore) -> None:
        self._store = store

    async def on_event(self, event: SystemEvent) -> None:
        """Record one usage of (field_label, value)."""
        if event.event_type not in self.watched_types or event.user_id is None:
            return

        label = event.data.get("field_label")
        value = event.data.get("value")
        if not label or value is None:
            logger.debug("Ignoring %s without label or value", event.event_type.value)
            return

        default_context = "user_selection" if event.event_type == EventType.SOURCE_SELECTED else "autofill"
        context = event.data.get("context") or default_context
        try:
            learned = await self._store.record_usage(event.user_id, label, str(value), context)
            logger.debug("Learned %r for user %s (usage=%d)", label, event.user_id, learned.usage_count)
        except Exception:
            logger.exception("Failed to record usage of %r (user=%s)", label, event.user_id)
