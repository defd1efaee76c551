"""
Integration test: patient registration, search, lifecycle and discharge readiness.
"""
from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

# Setup test environment before imports
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test_careline_api.db")

from packages.db.database import engine
from packages.db.models import Base
from packages.shared.lifecycle import DISCHARGE_CHECKLIST_ITEMS
from apps.api.main import app


@pytest.fixture(autouse=True)
def setup_db():
    """Create fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def facility_id(client):
    resp = client.post("/facilities", json={"name": "Al Noor Home Care"})
    assert resp.status_code == 201
    return resp.json()["id"]


def _patient_payload(**overrides) -> dict:
    payload = {
        "emirates_id": "784-1985-1234567-1",
        "first_name_en": "Fatima",
        "last_name_en": "Al Mansouri",
        "date_of_birth": "1985-04-12",
        "gender": "female",
        "phone_number": "+971501234567",
        "insurance_provider": "Daman",
        "insurance_number": "THQ-88812",
        "allergies": ["Penicillin"],
    }
    payload.update(overrides)
    return payload


def _create(client, facility_id, **overrides) -> dict:
    resp = client.post(f"/facilities/{facility_id}/patients", json=_patient_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestRegistration:
    def test_create_and_get(self, client, facility_id):
        created = _create(client, facility_id)
        assert created["status"] == "active"
        assert created["lifecycle_status"] == "referral"
        assert created["homebound_status"] == "pending_assessment"
        assert created["last_synced_at"] is None

        resp = client.get(f"/patients/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["emirates_id"] == "784-1985-1234567-1"

    def test_invalid_emirates_id(self, client, facility_id):
        resp = client.post(f"/facilities/{facility_id}/patients", json=_patient_payload(emirates_id="784-85-1-1"))
        assert resp.status_code == 422

    def test_missing_names_rejected(self, client, facility_id):
        resp = client.post(f"/facilities/{facility_id}/patients", json=_patient_payload(first_name_en=""))
        assert resp.status_code == 422

    def test_duplicate_emirates_id_in_facility(self, client, facility_id):
        _create(client, facility_id)
        resp = client.post(f"/facilities/{facility_id}/patients", json=_patient_payload(first_name_en="Other"))
        assert resp.status_code == 409

    def test_same_emirates_id_in_another_facility(self, client, facility_id):
        other = client.post("/facilities", json={"name": "Other Facility"}).json()["id"]
        _create(client, facility_id)
        _create(client, other)

    def test_unknown_facility(self, client):
        resp = client.post("/facilities/nope/patients", json=_patient_payload())
        assert resp.status_code == 404

    def test_unknown_patient(self, client):
        assert client.get("/patients/missing").status_code == 404


class TestSearch:
    @pytest.fixture
    def patients(self, client, facility_id):
        return [
            _create(client, facility_id),
            _create(client, facility_id, emirates_id="784-1990-7654321-2", first_name_en="Omar",
                    last_name_en="Haddad", gender="male", phone_number="+971509876543",
                    insurance_provider="ADNIC"),
            _create(client, facility_id, emirates_id="784-1970-1111111-3", first_name_en="Mariam",
                    last_name_en="Haddad", phone_number="+971500000001"),
        ]

    def test_text_search(self, client, facility_id, patients):
        resp = client.get(f"/facilities/{facility_id}/patients", params={"q": "hadd"})
        body = resp.json()
        assert body["total"] == 2
        assert {p["first_name_en"] for p in body["patients"]} == {"Omar", "Mariam"}

    def test_search_by_emirates_id(self, client, facility_id, patients):
        body = client.get(f"/facilities/{facility_id}/patients", params={"q": "7654321"}).json()
        assert [p["first_name_en"] for p in body["patients"]] == ["Omar"]

    def test_filters(self, client, facility_id, patients):
        body = client.get(f"/facilities/{facility_id}/patients", params={"gender": "male"}).json()
        assert body["total"] == 1
        body = client.get(f"/facilities/{facility_id}/patients", params={"insurance_provider": "Daman"}).json()
        assert body["total"] == 2

    def test_sort_and_paginate(self, client, facility_id, patients):
        body = client.get(
            f"/facilities/{facility_id}/patients",
            params={"sort_by": "first_name_en", "sort_order": "asc", "limit": 2, "offset": 1},
        ).json()
        assert body["total"] == 3
        assert [p["first_name_en"] for p in body["patients"]] == ["Mariam", "Omar"]

    def test_bad_sort(self, client, facility_id, patients):
        resp = client.get(f"/facilities/{facility_id}/patients", params={"sort_by": "password"})
        assert resp.status_code == 400

    def test_suggestions(self, client, facility_id, patients):
        assert client.get(f"/facilities/{facility_id}/patients/suggestions", params={"q": "h"}).json() == []
        items = client.get(f"/facilities/{facility_id}/patients/suggestions", params={"q": "haddad"}).json()
        assert [i["label"] for i in items] == ["Mariam Haddad", "Omar Haddad"]
        assert items[0]["type"] == "patient"
        assert items[0]["sublabel"] == "784-1970-1111111-3"


class TestLifecycle:
    def test_free_status_changes(self, client, facility_id):
        patient = _create(client, facility_id)
        resp = client.patch(f"/patients/{patient['id']}/lifecycle",
                            json={"lifecycle_status": "active_care", "homebound_status": "qualified"})
        assert resp.status_code == 200
        assert resp.json()["lifecycle_status"] == "active_care"
        assert resp.json()["homebound_status"] == "qualified"

    def test_discharge_blocked_until_ready(self, client, facility_id):
        patient = _create(client, facility_id)
        pid = patient["id"]

        resp = client.patch(f"/patients/{pid}/lifecycle", json={"lifecycle_status": "discharged"})
        assert resp.status_code == 409

        resp = client.patch(f"/patients/{pid}/discharge-readiness",
                            json={"items": {"caregiver_training": True, "discharge_summary": True}})
        assert resp.status_code == 200
        assert resp.json()["readiness_percentage"] == 33
        assert resp.json()["ready"] is False

        resp = client.patch(f"/patients/{pid}/discharge-readiness",
                            json={"items": {key: True for key in DISCHARGE_CHECKLIST_ITEMS}})
        assert resp.json()["readiness_percentage"] == 100

        resp = client.patch(f"/patients/{pid}/lifecycle", json={"lifecycle_status": "discharged"})
        assert resp.status_code == 200
        assert resp.json()["lifecycle_status"] == "discharged"
        assert resp.json()["status"] == "discharged"

    def test_readiness_read_and_unknown_item(self, client, facility_id):
        pid = _create(client, facility_id)["id"]
        body = client.get(f"/patients/{pid}/discharge-readiness").json()
        assert body["readiness_percentage"] == 0
        assert set(body["items"]) == set(DISCHARGE_CHECKLIST_ITEMS)

        resp = client.patch(f"/patients/{pid}/discharge-readiness", json={"items": {"paperwork": True}})
        assert resp.status_code == 400

    def test_empty_lifecycle_update(self, client, facility_id):
        pid = _create(client, facility_id)["id"]
        assert client.patch(f"/patients/{pid}/lifecycle", json={}).status_code == 400

    def test_unknown_lifecycle_status(self, client, facility_id):
        pid = _create(client, facility_id)["id"]
        assert client.patch(f"/patients/{pid}/lifecycle", json={"lifecycle_status": "archived"}).status_code == 422


class TestFacilityScoping:
    def test_cross_facility_access_denied(self, client, facility_id, monkeypatch):
        patient = _create(client, facility_id)
        monkeypatch.setenv("ACCESS_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_AUTH_MODE", "static")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "t" * 32)
        headers = {"X-Internal-Token": "t" * 32, "X-User-Id": "nurse-1", "X-Facility-Id": "other-facility"}

        assert client.get(f"/patients/{patient['id']}", headers=headers).status_code == 403
        assert client.get(f"/facilities/{facility_id}/patients", headers=headers).status_code == 403

        headers["X-Facility-Id"] = facility_id
        assert client.get(f"/patients/{patient['id']}", headers=headers).status_code == 200

    def test_facility_creation_disabled_under_enforcement(self, client, monkeypatch):
        monkeypatch.setenv("ACCESS_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_AUTH_MODE", "static")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "t" * 32)
        headers = {"X-Internal-Token": "t" * 32, "X-User-Id": "admin", "X-Facility-Id": "f1"}
        assert client.post("/facilities", json={"name": "X"}, headers=headers).status_code == 403

    def test_missing_credentials_under_enforcement(self, client, facility_id, monkeypatch):
        monkeypatch.setenv("ACCESS_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_AUTH_MODE", "static")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "t" * 32)
        assert client.get(f"/facilities/{facility_id}/patients").status_code == 401
