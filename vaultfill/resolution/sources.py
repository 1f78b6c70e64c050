"""Source priority resolver — the first COMPLETED document along a priority rule."""

from __future__ import annotations

import logging
import uuid

from vaultfill.models.enums import DocumentType
from vaultfill.schemas.resolution import PriorityRule
from vaultfill.vault.store import StoreError, StoreUnavailableError, VaultStore

logger = logging.getLogger(__name__)


async def find_source(store: VaultStore, user_id: uuid.UUID, rule: PriorityRule) -> DocumentType | None:
    """Walk [primary, *fallback] and return the first source the user has completed.

    A store error while probing one source skips that source. If every probe
    failed the store is considered down and StoreUnavailableError is raised.

    Returns:
        The chosen DocumentType, or None when no source in the rule is available.
    """
    failures = 0
    for source in rule.sources:
        try:
            available = await store.has_completed_document(user_id, source)
        except StoreError as exc:
            failures += 1
            logger.warning("Source probe failed for %s (user=%s): %s", source.value, user_id, exc)
            continue
        if available:
            logger.debug("Source %s available for user %s", source.value, user_id)
            return source

    if failures and failures == len(rule.sources):
        msg = f"Vault store unavailable: all {failures} source probes failed"
        raise StoreUnavailableError(msg)
    return None
