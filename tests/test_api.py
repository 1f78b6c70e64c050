"""Tests for the vault HTTP routes.

Covers:
- Document registration, lifecycle and sections (404 unknown, 409 illegal move)
- Resolve, batch resolve, alternatives, autofill, form sources, selection endpoints
- Ambiguity listing, resolution and ignore (404 on unknown id)
- Learned fields and most frequent values
- 503 when the store is missing or failing
"""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vaultfill.api.routes import router
from vaultfill.models.enums import DocumentType
from vaultfill.schemas.vault import AmbiguityCandidate
from vaultfill.vault.store import StoreError


@pytest.fixture()
def mock_emits():
    with (
        patch("vaultfill.resolution.resolver.emit", new_callable=AsyncMock),
        patch("vaultfill.resolution.alternatives.emit", new_callable=AsyncMock) as mock_alt,
        patch("vaultfill.vault.service.emit", new_callable=AsyncMock),
    ):
        yield mock_alt


@pytest.fixture()
def client(store, mock_emits):
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.state.store = store
    return TestClient(test_app)


@pytest.fixture()
def vault(seed):
    """Aadhaar and PAN documents for the default user."""
    asyncio.run(seed(DocumentType.AADHAAR, [("Name", "Ravi Kumar", 0.95), ("Date of Birth", "01/01/2005", 0.95)]))
    asyncio.run(seed(DocumentType.PAN, [("Name", "Ravi K", 0.9)]))


# ── Documents ────────────────────────────────────────────────────────


class TestDocuments:
    def _register(self, client, user_id, document_type="AADHAAR"):
        resp = client.post(
            f"/vault/{user_id}/documents",
            json={"document_type": document_type, "file_name": "aadhaar.jpg"},
        )
        assert resp.status_code == 201
        return resp.json()["id"]

    def test_register(self, client, user_id):
        resp = client.post(f"/vault/{user_id}/documents", json={"document_type": "PAN"})

        assert resp.status_code == 201
        assert resp.json()["status"] == "PENDING"
        assert resp.json()["document_type"] == "PAN"

    def test_register_unknown_type(self, client, user_id):
        resp = client.post(f"/vault/{user_id}/documents", json={"document_type": "VOTER_ID"})
        assert resp.status_code == 422

    def test_ingested_fields_resolve(self, client, user_id):
        document_id = self._register(client, user_id)

        assert client.post(f"/vault/documents/{document_id}/processing").json()["status"] == "PROCESSING"
        completed = client.post(
            f"/vault/documents/{document_id}/complete",
            json={
                "fields": [
                    {"name": "Name", "value": "Ravi Kumar", "confidence": 95},
                    {"name": "Date of Birth", "value": "01/01/2005"},
                ],
                "confidence": 0.9,
            },
        )
        resolved = client.post(f"/vault/{user_id}/resolve", json={"field_label": "Date of Birth"})

        assert completed.status_code == 200
        assert [f["field_name"] for f in completed.json()] == ["Name", "Date of Birth"]
        assert completed.json()[0]["confidence"] == 0.95
        assert completed.json()[1]["confidence"] == 0.9
        assert resolved.json()["status"] == "filled"
        assert resolved.json()["value"] == "01/01/2005"
        assert resolved.json()["source"] == "AADHAAR"

    def test_sections(self, client, user_id):
        document_id = self._register(client, user_id)
        client.post(
            f"/vault/documents/{document_id}/complete",
            json={"fields": [{"name": "Name", "value": "Ravi Kumar", "confidence": 0.95}]},
        )

        resp = client.get(f"/vault/{user_id}/sections")

        assert resp.status_code == 200
        by_type = {s["section"]["section_type"]: s["fields"] for s in resp.json()}
        assert set(by_type) == {"AADHAAR_SECTION", "PERSONAL_MASTER"}
        assert by_type["AADHAAR_SECTION"][0]["field_value"] == "Ravi Kumar"

    def test_fail(self, client, user_id):
        document_id = self._register(client, user_id)

        resp = client.post(f"/vault/documents/{document_id}/fail", json={"error": "Unreadable scan"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "FAILED"
        assert resp.json()["processing_error"] == "Unreadable scan"

    def test_completed_document_is_final(self, client, user_id):
        document_id = self._register(client, user_id)
        client.post(f"/vault/documents/{document_id}/complete", json={"fields": []})

        resp = client.post(f"/vault/documents/{document_id}/fail", json={"error": "late"})

        assert resp.status_code == 409

    def test_unknown_document(self, client):
        resp = client.post(f"/vault/documents/{uuid.uuid4()}/processing")
        assert resp.status_code == 404


# ── Resolution ───────────────────────────────────────────────────────


class TestResolve:
    def test_filled(self, client, user_id, vault):
        resp = client.post(f"/vault/{user_id}/resolve", json={"field_label": "Date of Birth"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "filled"
        assert body["value"] == "01/01/2005"
        assert body["source"] == "AADHAAR"

    def test_missing(self, client, user_id):
        resp = client.post(f"/vault/{user_id}/resolve", json={"field_label": "Full Name"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "missing"
        assert resp.json()["reason"] == "No document source available"

    def test_batch(self, client, user_id, vault):
        resp = client.post(
            f"/vault/{user_id}/resolve-batch",
            json={"field_labels": ["Date of Birth", "Blood Group"]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert [r["form_field"] for r in body["results"]] == ["Date of Birth", "Blood Group"]
        assert body["summary"]["total"] == 2
        assert body["summary"]["filled"] == 1

    def test_bad_user_id(self, client):
        resp = client.post("/vault/not-a-uuid/resolve", json={"field_label": "Name"})
        assert resp.status_code == 422


# ── Alternatives ─────────────────────────────────────────────────────


class TestAlternatives:
    def test_best_and_alternatives(self, client, user_id, vault):
        resp = client.post(f"/vault/{user_id}/alternatives", json={"field_label": "Name"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["best"]["value"] == "Ravi Kumar"
        assert body["best"]["source"] == "AADHAAR"
        assert [a["value"] for a in body["alternatives"]] == ["Ravi K"]
        assert body["total_sources"] == 2

    def test_no_data(self, client, user_id):
        resp = client.post(f"/vault/{user_id}/alternatives", json={"field_label": "Name"})

        assert resp.status_code == 200
        assert resp.json()["best"] is None
        assert resp.json()["message"] == "No data found for this field"

    def test_autofill(self, client, user_id, vault):
        resp = client.post(
            f"/vault/{user_id}/autofill",
            json={"field_labels": ["--- PERSONAL ---", "Name", "Blood Group"]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["summary"]["total"] == 2
        assert body["summary"]["fields_with_alternatives"] == 1

    def test_selection(self, client, user_id, mock_emits):
        resp = client.post(
            f"/vault/{user_id}/selections",
            json={"field_label": "Name", "value": "Ravi K", "source": "PAN"},
        )

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["selected_source"] == "PAN"
        mock_emits.assert_awaited_once()

    def test_selection_unknown_source(self, client, user_id):
        resp = client.post(
            f"/vault/{user_id}/selections",
            json={"field_label": "Name", "value": "Ravi K", "source": "DRIVING_LICENCE"},
        )
        assert resp.status_code == 422


# ── Ambiguities ──────────────────────────────────────────────────────


class TestAmbiguities:
    @pytest.fixture()
    def ambiguity(self, store, user_id):
        return asyncio.run(
            store.upsert_ambiguity(
                user_id,
                "name",
                [
                    AmbiguityCandidate(value="Ravi Kumar", source=DocumentType.AADHAAR),
                    AmbiguityCandidate(value="Suresh Reddy", source=DocumentType.PAN),
                ],
            )
        )

    def test_list_pending(self, client, user_id, ambiguity):
        resp = client.get(f"/vault/{user_id}/ambiguities")

        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()] == [str(ambiguity.id)]
        assert resp.json()[0]["candidates"][1]["source"] == "PAN"

    def test_resolve(self, client, user_id, ambiguity):
        resp = client.post(
            f"/vault/ambiguities/{ambiguity.id}/resolve",
            json={"resolved_value": "Ravi Kumar", "notes": "Aadhaar is correct"},
        )

        assert resp.status_code == 200
        assert resp.json()["resolution_status"] == "RESOLVED"
        assert client.get(f"/vault/{user_id}/ambiguities").json() == []
        resolved = client.get(f"/vault/{user_id}/ambiguities", params={"status": "RESOLVED"}).json()
        assert resolved[0]["resolved_value"] == "Ravi Kumar"

    def test_resolve_unknown(self, client):
        resp = client.post(f"/vault/ambiguities/{uuid.uuid4()}/resolve", json={"resolved_value": "x"})
        assert resp.status_code == 404

    def test_ignore(self, client, user_id, ambiguity):
        resp = client.post(f"/vault/ambiguities/{ambiguity.id}/ignore")

        assert resp.status_code == 200
        assert resp.json()["resolution_status"] == "IGNORED"
        assert client.get(f"/vault/{user_id}/ambiguities").json() == []

    def test_ignore_unknown(self, client):
        resp = client.post(f"/vault/ambiguities/{uuid.uuid4()}/ignore")
        assert resp.status_code == 404


# ── Form sources and learned values ──────────────────────────────────


class TestFormSources:
    def test_contribution(self, client, user_id, vault):
        resp = client.post(
            f"/vault/{user_id}/form-sources",
            json={"field_labels": ["Name", "Date of Birth", "Blood Group"]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert set(body["sources"]) == {"AADHAAR", "PAN"}
        assert body["fields_by_source"]["AADHAAR"] == ["Name", "Date of Birth"]
        assert body["source_contribution"]["PAN"] == 1
        assert body["source_contribution"]["DEGREE"] == 0


class TestLearnedValues:
    @pytest.fixture()
    def usage(self, store, user_id):
        async def record():
            for value in ("Ravi Kumar", "Ravi K", "Ravi Kumar"):
                await store.record_usage(user_id, "name", value, "autofill")
            await store.record_usage(user_id, "date of birth", "01/01/2005", "autofill")

        asyncio.run(record())

    def test_learned_fields(self, client, user_id, usage):
        resp = client.get(f"/vault/{user_id}/learned-fields")

        assert resp.status_code == 200
        assert [f["field_name"] for f in resp.json()] == ["name", "date of birth"]
        assert resp.json()[0]["usage_count"] == 3

    def test_learned_fields_limit(self, client, user_id, usage):
        resp = client.get(f"/vault/{user_id}/learned-fields", params={"limit": 1})
        assert len(resp.json()) == 1

    def test_most_frequent_values(self, client, user_id, usage):
        resp = client.get(f"/vault/{user_id}/learned-fields/name/values")

        assert resp.status_code == 200
        assert resp.json() == [{"value": "Ravi Kumar", "frequency": 2}, {"value": "Ravi K", "frequency": 1}]

    def test_unknown_field_has_no_values(self, client, user_id):
        resp = client.get(f"/vault/{user_id}/learned-fields/blood group/values")

        assert resp.status_code == 200
        assert resp.json() == []


# ── Store availability ───────────────────────────────────────────────


class TestStoreErrors:
    def test_store_not_initialized(self, mock_emits):
        test_app = FastAPI()
        test_app.include_router(router)
        client = TestClient(test_app)

        resp = client.post(f"/vault/{uuid.uuid4()}/resolve", json={"field_label": "Name"})

        assert resp.status_code == 503

    def test_store_failure(self, mock_emits):
        failing = MagicMock()
        failing.completed_document_types = AsyncMock(side_effect=StoreError("connection refused"))
        failing.list_ambiguities = AsyncMock(side_effect=StoreError("connection refused"))
        test_app = FastAPI()
        test_app.include_router(router)
        test_app.state.store = failing
        client = TestClient(test_app)
        user_id = uuid.uuid4()

        alternatives = client.post(f"/vault/{user_id}/alternatives", json={"field_label": "Name"})
        ambiguities = client.get(f"/vault/{user_id}/ambiguities")

        assert alternatives.status_code == 503
        assert alternatives.json()["detail"] == "Vault store unavailable"
        assert ambiguities.status_code == 503

    def test_resolve_reports_error(self, mock_emits):
        failing = MagicMock()
        failing.has_completed_document = AsyncMock(side_effect=StoreError("connection refused"))
        test_app = FastAPI()
        test_app.include_router(router)
        test_app.state.store = failing
        client = TestClient(test_app)

        resp = client.post(f"/vault/{uuid.uuid4()}/resolve", json={"field_label": "Date of Birth"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "error"
        assert resp.json()["reason"].startswith("Vault store unavailable")
