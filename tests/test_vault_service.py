"""Tests for the vault ingestion service.

Covers:
- Document lifecycle and illegal transitions
- Field storage: section routing, family flag, confidence defaults
- Personal Master reconciliation by source authority
- Conflict detection on the Personal Master
- Ambiguity resolution and learned-value queries
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from vaultfill.models.enums import AmbiguityStatus, DocumentStatus, DocumentType, SectionType
from vaultfill.schemas.events import EventType
from vaultfill.schemas.vault import AmbiguityCandidate, ExtractedFieldInput
from vaultfill.vault.service import (
    DocumentStateError,
    VaultService,
    is_family_data,
    route_document,
    source_authority,
)
from vaultfill.vault.store import AmbiguityNotFoundError, DocumentNotFoundError


@pytest.fixture()
def mock_emit():
    with patch("vaultfill.vault.service.emit", new_callable=AsyncMock) as mocked:
        yield mocked


@pytest.fixture()
def service(store, mock_emit) -> VaultService:
    return VaultService(store)


def _emitted(mock_emit: AsyncMock, event_type: EventType) -> list:
    return [c.args[0] for c in mock_emit.await_args_list if c.args[0].event_type == event_type]


async def _ingest(service: VaultService, user_id, document_type: DocumentType, fields: dict[str, str], **kwargs):
    document = await service.register_document(user_id, document_type)
    await service.mark_processing(document.id)
    return await service.complete_document(
        document.id,
        [ExtractedFieldInput(name=name, value=value) for name, value in fields.items()],
        **kwargs,
    )


async def _master(service: VaultService, user_id) -> dict[str, str]:
    sections = {s.section.section_type: s for s in await service.get_sections(user_id)}
    return {f.field_name: f.field_value for f in sections[SectionType.PERSONAL_MASTER].fields}


# ── Helpers ──────────────────────────────────────────────────────────


class TestRouting:
    def test_each_document_has_a_section(self):
        assert route_document(DocumentType.AADHAAR) == SectionType.AADHAAR_SECTION
        assert route_document(DocumentType.TENTH) == SectionType.EDUCATION_10TH
        assert {route_document(t) for t in DocumentType} == set(SectionType) - {SectionType.PERSONAL_MASTER}

    def test_authority_order(self):
        assert source_authority(DocumentType.AADHAAR) > source_authority(DocumentType.PASSPORT)
        assert source_authority(DocumentType.PASSPORT) > source_authority(DocumentType.PAN)
        assert source_authority(DocumentType.PAN) > source_authority(DocumentType.DEGREE)
        assert source_authority(None) == 0

    def test_family_data(self):
        assert is_family_data("Father's Name")
        assert is_family_data("Mother Name")
        assert not is_family_data("Name")


# ── Lifecycle ────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio()
    async def test_register_is_pending(self, service, store, user_id, mock_emit):
        document = await service.register_document(user_id, DocumentType.PAN, "pan.jpg")

        assert document.status == DocumentStatus.PENDING
        assert document.file_name == "pan.jpg"
        assert not await store.has_completed_document(user_id, DocumentType.PAN)
        event = _emitted(mock_emit, EventType.DOCUMENT_REGISTERED)[0]
        assert event.data["document_type"] == "PAN"
        assert event.data["status"] == "PENDING"

    @pytest.mark.asyncio()
    async def test_full_lifecycle(self, service, store, user_id, mock_emit):
        document = await service.register_document(user_id, DocumentType.AADHAAR)

        processing = await service.mark_processing(document.id)
        saved = await service.complete_document(document.id, [ExtractedFieldInput(name="Gender", value="Male")])

        assert processing.status == DocumentStatus.PROCESSING
        assert len(saved) == 1
        completed = await store.get_document(document.id)
        assert completed.status == DocumentStatus.COMPLETED
        assert completed.extracted_fields_count == 1
        assert _emitted(mock_emit, EventType.DOCUMENT_COMPLETED)[0].data["fields_count"] == 1

    @pytest.mark.asyncio()
    async def test_complete_straight_from_pending(self, service, store, user_id):
        document = await service.register_document(user_id, DocumentType.TENTH)

        await service.complete_document(document.id, [])

        assert await store.has_completed_document(user_id, DocumentType.TENTH)

    @pytest.mark.asyncio()
    async def test_completed_is_final(self, service, user_id):
        document = await service.register_document(user_id, DocumentType.PAN)
        await service.complete_document(document.id, [])

        with pytest.raises(DocumentStateError):
            await service.mark_processing(document.id)
        with pytest.raises(DocumentStateError):
            await service.fail_document(document.id, "late failure")

    @pytest.mark.asyncio()
    async def test_failed_can_be_reprocessed(self, service, store, user_id, mock_emit):
        document = await service.register_document(user_id, DocumentType.DEGREE)
        await service.mark_processing(document.id)

        failed = await service.fail_document(document.id, "OCR timeout")

        assert failed.status == DocumentStatus.FAILED
        assert failed.processing_error == "OCR timeout"
        assert _emitted(mock_emit, EventType.DOCUMENT_FAILED)[0].data["error"] == "OCR timeout"
        with pytest.raises(DocumentStateError):
            await service.complete_document(document.id, [])

        await service.mark_processing(document.id)
        await service.complete_document(document.id, [])
        assert await store.has_completed_document(user_id, DocumentType.DEGREE)

    @pytest.mark.asyncio()
    async def test_unknown_document(self, service):
        with pytest.raises(DocumentNotFoundError):
            await service.mark_processing(uuid.uuid4())


# ── Field storage ────────────────────────────────────────────────────


class TestCompleteDocument:
    @pytest.mark.asyncio()
    async def test_fields_stored_in_document_section(self, service, store, user_id):
        document = await service.register_document(user_id, DocumentType.AADHAAR)

        saved = await service.complete_document(
            document.id,
            [
                ExtractedFieldInput(name="Name", value=" Ravi Kumar ", confidence=95),
                ExtractedFieldInput(name="Father Name", value="Suresh Kumar"),
                ExtractedFieldInput(name="  ", value="orphan"),
                ExtractedFieldInput(name="Gender", value=""),
            ],
            confidence=90,
        )

        assert [f.field_name for f in saved] == ["Name", "Father Name"]
        name, father = saved
        assert name.field_value == "Ravi Kumar"
        assert name.confidence == 0.95
        assert name.semantic_tag == "student_name"
        assert not name.is_family_data
        assert father.confidence == 0.9
        assert father.semantic_tag == "father_name"
        assert father.is_family_data
        assert all(f.extracted_from == DocumentType.AADHAAR and f.document_id == document.id for f in saved)

        section = await store.get_or_create_section(user_id, SectionType.AADHAAR_SECTION)
        assert all(f.section_id == section.id for f in saved)
        assert (await store.get_document(document.id)).confidence == 0.9

    @pytest.mark.asyncio()
    async def test_default_confidence(self, service, user_id):
        saved = await _ingest(service, user_id, DocumentType.PAN, {"PAN Number": "ABCDE1234F"})

        assert saved[0].confidence == 0.85
        assert saved[0].semantic_tag == "pan"

    @pytest.mark.asyncio()
    async def test_explicit_semantic_tag_kept(self, service, user_id):
        document = await service.register_document(user_id, DocumentType.DEGREE)

        saved = await service.complete_document(
            document.id, [ExtractedFieldInput(name="Aggregate", value="8.2", semantic_tag="cgpa")]
        )

        assert saved[0].semantic_tag == "cgpa"


# ── Personal Master ──────────────────────────────────────────────────


class TestPersonalMaster:
    @pytest.mark.asyncio()
    async def test_personal_fields_mirrored(self, service, user_id):
        await _ingest(
            service,
            user_id,
            DocumentType.AADHAAR,
            {"Name": "Ravi Kumar", "Date of Birth": "01/01/2005", "Roll Number": "R-100"},
        )

        master = await _master(service, user_id)

        assert master == {"Name": "Ravi Kumar", "Date of Birth": "01/01/2005"}

    @pytest.mark.asyncio()
    async def test_higher_authority_replaces(self, service, user_id):
        await _ingest(service, user_id, DocumentType.PAN, {"Name": "R Kumar"})
        await _ingest(service, user_id, DocumentType.AADHAAR, {"Name": "Ravi Kumar"})

        assert (await _master(service, user_id))["Name"] == "Ravi Kumar"

    @pytest.mark.asyncio()
    async def test_lower_authority_does_not_replace(self, service, user_id):
        await _ingest(service, user_id, DocumentType.AADHAAR, {"Name": "Ravi Kumar"})
        await _ingest(service, user_id, DocumentType.PAN, {"Name": "R Kumar"})

        assert (await _master(service, user_id))["Name"] == "Ravi Kumar"

    @pytest.mark.asyncio()
    async def test_source_fields_untouched(self, service, store, user_id):
        await _ingest(service, user_id, DocumentType.AADHAAR, {"Name": "Ravi Kumar"})
        await _ingest(service, user_id, DocumentType.PAN, {"Name": "R Kumar"})

        pan_fields = await store.find_fields(user_id, source=DocumentType.PAN, field_name="Name")

        assert {f.field_value for f in pan_fields} == {"R Kumar"}

    @pytest.mark.asyncio()
    async def test_conflict_detected(self, service, user_id, mock_emit):
        await _ingest(service, user_id, DocumentType.AADHAAR, {"Name": "Ravi Kumar"})
        await _ingest(service, user_id, DocumentType.PAN, {"Name": "Suresh Reddy"})

        events = _emitted(mock_emit, EventType.AMBIGUITY_DETECTED)

        assert len(events) == 1
        assert events[0].data["field_label"] == "Name"
        assert [c["value"] for c in events[0].data["candidates"]] == ["Ravi Kumar", "Suresh Reddy"]
        assert [c["source"] for c in events[0].data["candidates"]] == ["AADHAAR", "PAN"]

    @pytest.mark.asyncio()
    async def test_same_value_no_conflict(self, service, user_id, mock_emit):
        await _ingest(service, user_id, DocumentType.AADHAAR, {"Name": "Ravi Kumar"})
        await _ingest(service, user_id, DocumentType.PAN, {"Name": "RAVI  KUMAR"})

        assert _emitted(mock_emit, EventType.AMBIGUITY_DETECTED) == []


# ── Ambiguities and learning ─────────────────────────────────────────


async def _ambiguity(store, user_id):
    return await store.upsert_ambiguity(
        user_id,
        "name",
        [AmbiguityCandidate(value="Ravi Kumar"), AmbiguityCandidate(value="Suresh Reddy")],
    )


class TestAmbiguities:
    @pytest.mark.asyncio()
    async def test_resolve(self, service, store, user_id, mock_emit):
        ambiguity = await _ambiguity(store, user_id)

        resolved = await service.resolve_ambiguity(ambiguity.id, "Ravi Kumar", "Aadhaar is correct", user_id=user_id)

        assert resolved.resolution_status == AmbiguityStatus.RESOLVED
        assert resolved.resolved_value == "Ravi Kumar"
        assert resolved.resolution_notes == "Aadhaar is correct"
        assert await service.list_ambiguities(user_id) == []
        event = _emitted(mock_emit, EventType.AMBIGUITY_RESOLVED)[0]
        assert event.data["value"] == "Ravi Kumar"

    @pytest.mark.asyncio()
    async def test_ignore(self, service, store, user_id):
        ambiguity = await _ambiguity(store, user_id)

        ignored = await service.ignore_ambiguity(ambiguity.id)

        assert ignored.resolution_status == AmbiguityStatus.IGNORED
        assert await service.list_ambiguities(user_id, AmbiguityStatus.IGNORED) == [ignored]

    @pytest.mark.asyncio()
    async def test_other_users_ambiguity_hidden(self, service, store, user_id):
        ambiguity = await _ambiguity(store, user_id)

        with pytest.raises(AmbiguityNotFoundError):
            await service.resolve_ambiguity(ambiguity.id, "x", user_id=uuid.uuid4())

    @pytest.mark.asyncio()
    async def test_unknown(self, service):
        with pytest.raises(AmbiguityNotFoundError):
            await service.ignore_ambiguity(uuid.uuid4())


class TestLearnedValues:
    @pytest.mark.asyncio()
    async def test_most_frequent_first(self, service, store, user_id):
        for value in ("Ravi", "Ravi K", "Ravi K", "R", "Ravi K", "R"):
            await store.record_usage(user_id, "Name", value, "autofill")

        top = await service.get_most_frequent_values(user_id, "Name", limit=2)

        assert [(v.value, v.frequency) for v in top] == [("Ravi K", 3), ("R", 2)]

    @pytest.mark.asyncio()
    async def test_unknown_field(self, service, user_id):
        assert await service.get_most_frequent_values(user_id, "Name") == []
        assert await service.get_learned_fields(user_id) == []
