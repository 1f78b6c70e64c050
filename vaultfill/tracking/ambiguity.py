"""Ambiguity tracker — persists conflicting same-field values for user review.

Subscribed to AMBIGUITY_DETECTED. One VaultAmbiguity exists per
(user, field); a new detection replaces its candidates and reopens it.

Handler errors are logged, not raised.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from vaultfill.schemas.events import EventType, SystemEvent
from vaultfill.schemas.vault import AmbiguityCandidate
from vaultfill.vault.store import VaultStore

logger = logging.getLogger(__name__)


class AmbiguityTracker:
    """Upserts VaultAmbiguity records from AMBIGUITY_DETECTED events."""

    watched_types: list[EventType] = [EventType.AMBIGUITY_DETECTED]

    def __init__(self, store: VaultStore) -> None:
        self._store = store

    async def on_event(self, event: SystemEvent) -> None:
        """Create or reopen the ambiguity for the event's field."""
        if event.event_type not in self.watched_types or event.user_id is None:
            return

        label = event.data.get("field_label")
        if not label:
            return

        try:
            candidates = [AmbiguityCandidate.model_validate(c) for c in event.data.get("candidates", [])]
        except ValidationError:
            logger.exception("Malformed ambiguity candidates for %r", label)
            return
        if len(candidates) < 2:
            return

        try:
            ambiguity = await self._store.upsert_ambiguity(event.user_id, label, candidates)
            logger.info(
                "Ambiguity %s recorded for %r (user=%s, %d candidates)",
                ambiguity.id,
                label,
                event.user_id,
                len(candidates),
            )
        except Exception:
            logger.exception("Failed to record ambiguity for %r (user=%s)", label, event.user_id)
