"""Shared fixtures: an in-memory vault and a helper to seed it."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from vaultfill.models.enums import DocumentStatus, DocumentType
from vaultfill.schemas.vault import VaultDocumentRecord, VaultFieldRecord
from vaultfill.vault.memory import InMemoryVaultStore

BASE_TIME = datetime(2026, 1, 15, 10, 0, tzinfo=UTC)


@pytest.fixture()
def store() -> InMemoryVaultStore:
    return InMemoryVaultStore()


@pytest.fixture()
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def seed(store: InMemoryVaultStore, user_id: uuid.UUID):
    """Add a document with fields to the store.

    `fields` items are (name, value, confidence) or
    (name, value, confidence, semantic_tag). Later fields are newer.

        await seed(DocumentType.AADHAAR, [("Date of Birth", "01/01/2005", 0.95)])
    """
    counter = {"n": 0}

    async def _seed(
        document_type: DocumentType,
        fields: list[tuple],
        status: DocumentStatus = DocumentStatus.COMPLETED,
        owner: uuid.UUID | None = None,
    ) -> list[VaultFieldRecord]:
        owner = owner or user_id
        document = await store.add_document(
            VaultDocumentRecord(user_id=owner, document_type=document_type, status=status)
        )
        records = []
        for spec in fields:
            name, value, confidence, *rest = spec
            counter["n"] += 1
            records.append(
                VaultFieldRecord(
                    user_id=owner,
                    field_name=name,
                    field_value=value,
                    confidence=confidence,
                    extracted_from=document_type,
                    document_id=document.id,
                    semantic_tag=rest[0] if rest else None,
                    created_at=BASE_TIME + timedelta(minutes=counter["n"]),
                )
            )
        return await store.add_fields(records)

    return _seed
