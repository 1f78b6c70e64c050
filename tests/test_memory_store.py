"""Tests for the in-memory vault store."""

from __future__ import annotations

import uuid

import pytest

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.schemas.vault import AmbiguityCandidate, VaultDocumentRecord, VaultFieldRecord
from vaultfill.vault.store import AmbiguityNotFoundError, DocumentNotFoundError, StoreError

A = DocumentType.AADHAAR


class TestDocuments:
    @pytest.mark.asyncio()
    async def test_add_and_get(self, store, user_id):
        doc = await store.add_document(VaultDocumentRecord(user_id=user_id, document_type=A))

        assert await store.get_document(doc.id) == doc
        assert doc.status == DocumentStatus.PENDING

    @pytest.mark.asyncio()
    async def test_duplicate_id_rejected(self, store, user_id):
        doc = VaultDocumentRecord(user_id=user_id, document_type=A)
        await store.add_document(doc)

        with pytest.raises(StoreError):
            await store.add_document(doc)

    @pytest.mark.asyncio()
    async def test_update_normalizes_confidence(self, store, user_id):
        doc = await store.add_document(VaultDocumentRecord(user_id=user_id, document_type=A))

        updated = await store.update_document(doc.id, status=DocumentStatus.COMPLETED, confidence=92)

        assert updated.confidence == 0.92
        assert await store.has_completed_document(user_id, A)
        assert await store.completed_document_types(user_id) == {A}

    @pytest.mark.asyncio()
    async def test_update_unknown(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.update_document(uuid.uuid4(), status=DocumentStatus.FAILED)


class TestSections:
    @pytest.mark.asyncio()
    async def test_get_or_create_is_stable(self, store, user_id):
        first = await store.get_or_create_section(user_id, SectionType.AADHAAR_SECTION)
        second = await store.get_or_create_section(user_id, SectionType.AADHAAR_SECTION)

        assert first.id == second.id
        assert await store.list_sections(user_id) == [first]
        assert await store.list_sections(uuid.uuid4()) == []


class TestFields:
    @pytest.mark.asyncio()
    async def test_newest_first(self, store, user_id, seed):
        await seed(A, [("Name", "old", 0.9), ("Name", "new", 0.9)])

        found = await store.find_fields(user_id)

        assert [f.field_value for f in found] == ["new", "old"]

    @pytest.mark.asyncio()
    async def test_filters(self, store, user_id, seed):
        await seed(A, [("Name", "Ravi", 0.9), ("Gender", "Male", 0.5)])
        await seed(DocumentType.PAN, [("Name", "Ravi", 0.9)])

        assert len(await store.find_fields(user_id, source=A)) == 2
        assert len(await store.find_fields(user_id, field_name="NAME")) == 2
        assert len(await store.find_fields(user_id, min_confidence=0.85)) == 2
        assert len(await store.find_fields(user_id, limit=1)) == 1
        assert await store.find_fields(uuid.uuid4()) == []

    def test_confidence_normalized_on_ingress(self, user_id):
        record = VaultFieldRecord(user_id=user_id, field_name="Name", field_value="Ravi", confidence=95)
        assert record.confidence == 0.95

    @pytest.mark.asyncio()
    async def test_replace_unknown(self, store, user_id):
        with pytest.raises(StoreError):
            await store.replace_field(VaultFieldRecord(user_id=user_id, field_name="x", field_value="y"))


class TestAmbiguities:
    @pytest.mark.asyncio()
    async def test_lifecycle(self, store, user_id):
        candidates = [AmbiguityCandidate(value="a"), AmbiguityCandidate(value="b")]
        created = await store.upsert_ambiguity(user_id, "name", candidates)

        ignored = await store.set_ambiguity_status(created.id, AmbiguityStatus.IGNORED)

        assert ignored.resolution_status == AmbiguityStatus.IGNORED
        assert await store.list_ambiguities(user_id) == []
        assert await store.list_ambiguities(user_id, AmbiguityStatus.IGNORED) == [ignored]

    @pytest.mark.asyncio()
    async def test_unknown_ambiguity(self, store):
        with pytest.raises(AmbiguityNotFoundError):
            await store.set_ambiguity_status(uuid.uuid4(), AmbiguityStatus.RESOLVED)


class TestLearning:
    @pytest.mark.asyncio()
    async def test_frequencies(self, store, user_id):
        await store.record_usage(user_id, "Name", "Ravi", "autofill")
        await store.record_usage(user_id, "Name", "Ravi K", "user_selection")
        learned = await store.record_usage(user_id, "Name", "Ravi", "autofill")

        assert learned.usage_count == 3
        assert {v.value: v.frequency for v in learned.extracted_values} == {"Ravi": 2, "Ravi K": 1}
        assert learned.contexts == ["autofill", "user_selection"]

    @pytest.mark.asyncio()
    async def test_most_used_first(self, store, user_id):
        await store.record_usage(user_id, "Gender", "Male", "autofill")
        await store.record_usage(user_id, "Name", "Ravi", "autofill")
        await store.record_usage(user_id, "Name", "Ravi", "autofill")

        fields = await store.list_learned_fields(user_id)

        assert [f.field_name for f in fields] == ["Name", "Gender"]
