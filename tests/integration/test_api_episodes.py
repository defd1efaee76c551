"""
Integration test: episodes of care, timeline events and forms.
"""
from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

# Setup test environment before imports
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test_careline_api.db")

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
    facility_id = client.post("/facilities", json={"name": "Episode Facility"}).json()["id"]
    resp = client.post(f"/facilities/{facility_id}/patients", json={
        "emirates_id": "784-1960-2222222-4",
        "first_name_en": "Salem",
        "last_name_en": "Al Ketbi",
        "date_of_birth": "1960-09-09",
    })
    assert resp.status_code == 201
    return resp.json()["id"]


def test_episode_numbers_are_sequential(client, patient_id):
    first = client.post(f"/patients/{patient_id}/episodes", json={"start_date": "2025-01-10"}).json()
    second = client.post(f"/patients/{patient_id}/episodes",
                         json={"start_date": "2025-04-02", "primary_diagnosis": "COPD"}).json()
    assert first["episode_number"] == 1
    assert second["episode_number"] == 2
    assert second["status"] == "active"

    listed = client.get(f"/patients/{patient_id}/episodes").json()
    assert [e["episode_number"] for e in listed] == [2, 1]


def test_episode_read_view(client, patient_id):
    eid = client.post(f"/patients/{patient_id}/episodes", json={"start_date": "2025-01-10"}).json()["id"]

    for occurred_at, title in [
        ("2025-01-15T09:00:00", "Nursing visit"),
        ("2025-01-10T08:00:00", "Admission"),
        ("2025-01-12T14:30:00", "Physician review"),
    ]:
        resp = client.post(f"/episodes/{eid}/events", json={
            "occurred_at": occurred_at, "event_type": "visit", "title": title, "performed_by": "RN Layla",
        })
        assert resp.status_code == 201

    client.post(f"/episodes/{eid}/forms", json={"form_type": "assessment", "data": {"braden": 18}})
    client.post(f"/episodes/{eid}/forms", json={"form_type": "monitoring", "status": "submitted"})
    client.post(f"/episodes/{eid}/forms", json={"form_type": "assessment", "status": "completed"})

    body = client.get(f"/episodes/{eid}").json()
    assert body["episode"]["id"] == eid
    assert [ev["title"] for ev in body["timeline"]] == ["Admission", "Physician review", "Nursing visit"]
    assert sorted(body["forms"]) == ["assessment", "monitoring"]
    assert len(body["forms"]["assessment"]) == 2
    assert body["forms"]["monitoring"][0]["submitted_at"] is not None


def test_close_episode(client, patient_id):
    eid = client.post(f"/patients/{patient_id}/episodes", json={"start_date": "2025-01-10"}).json()["id"]
    resp = client.patch(f"/episodes/{eid}", json={"status": "completed", "end_date": "2025-03-01"})
    assert resp.status_code == 200
    assert resp.json()["end_date"] == "2025-03-01"
    assert client.patch(f"/episodes/{eid}", json={"end_date": "2024-12-01"}).status_code == 400


def test_form_validation(client, patient_id):
    eid = client.post(f"/patients/{patient_id}/episodes", json={"start_date": "2025-01-10"}).json()["id"]
    assert client.post(f"/episodes/{eid}/forms", json={"form_type": "invoice"}).status_code == 422
    assert client.post(f"/episodes/{eid}/forms",
                       json={"form_type": "care_plan", "status": "shredded"}).status_code == 400


def test_unknown_episode(client):
    assert client.get("/episodes/missing").status_code == 404
    assert client.post("/patients/missing/episodes", json={"start_date": "2025-01-10"}).status_code == 404
