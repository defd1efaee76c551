"""
Integration test: EMR sync endpoints against the mock integration client.
"""
from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

# Setup test environment before imports
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test_careline_api.db")
os.environ.setdefault("INTEGRATION_MODE", "mock")

from packages.db.database import engine
from packages.db.models import Base
from apps.api.main import app


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def patient_id(client):
    facility_id = client.post("/facilities", json={"name": "Sync Facility"}).json()["id"]
    resp = client.post(f"/facilities/{facility_id}/patients", json={
        "emirates_id": "784-1985-1234567-1",
        "first_name_en": "Fatima",
        "last_name_en": "Al Mansouri",
        "date_of_birth": "1985-04-12",
        "gender": "female",
        "phone_number": "+971501234567",
        "email": "fatima@example.ae",
        "address": {"street": "Al Wahda St 12", "city": "Abu Dhabi", "emirate": "Abu Dhabi"},
        "insurance_provider": "Daman",
        "insurance_number": "THQ-88812",
        "blood_type": "O+",
        "allergies": ["Penicillin"],
        "chronic_conditions": ["Hypertension"],
    })
    assert resp.status_code == 201
    return resp.json()["id"]


def test_forced_sync_applies_and_records_timestamp(client, patient_id):
    resp = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True})
    assert resp.status_code == 200
    session = resp.json()
    assert session["status"] == "applied"
    assert session["progress"] == 100
    assert session["steps"][-1]["step"] == "applied"
    assert session["result"]["data_completeness"] == 100
    assert session["result"]["fhir_mapping"]["patient"]["id"] == patient_id

    assert client.get(f"/patients/{patient_id}").json()["last_synced_at"] is not None


def test_recent_sync_is_served_from_cache(client, patient_id):
    first = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True}).json()
    second = client.post(f"/patients/{patient_id}/sync", json={}).json()
    assert second["id"] != first["id"]
    assert second["status"] == "applied"
    assert second["result"]["cache_hit"] is True


def test_session_lookup_and_listing(client, patient_id):
    first = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True}).json()
    second = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True}).json()

    resp = client.get(f"/sync-sessions/{first['id']}")
    assert resp.status_code == 200
    assert resp.json()["patient_id"] == patient_id

    listed = client.get(f"/patients/{patient_id}/sync-sessions").json()
    assert [s["id"] for s in listed] == [second["id"], first["id"]]


def test_cancel_finished_session_conflicts(client, patient_id):
    session = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True}).json()
    assert client.post(f"/sync-sessions/{session['id']}/cancel").status_code == 409


def test_unknown_session_and_patient(client):
    assert client.get("/sync-sessions/missing").status_code == 404
    assert client.post("/sync-sessions/missing/cancel").status_code == 404
    assert client.post("/patients/missing/sync", json={}).status_code == 404


def test_unauthorized_role_fails_sync(client, patient_id, monkeypatch):
    facility_id = client.get(f"/patients/{patient_id}").json()["facility_id"]
    monkeypatch.setenv("ACCESS_ENFORCEMENT", "true")
    monkeypatch.setenv("API_INTERNAL_AUTH_MODE", "static")
    monkeypatch.setenv("API_INTERNAL_TOKEN", "t" * 32)
    headers = {
        "X-Internal-Token": "t" * 32,
        "X-User-Id": "clerk-1",
        "X-Facility-Id": facility_id,
        "X-User-Role": "billing_clerk",
    }
    session = client.post(f"/patients/{patient_id}/sync", json={"force_sync": True}, headers=headers).json()
    assert session["status"] == "error"
    assert "billing_clerk" in session["errors"][-1]
