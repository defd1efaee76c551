"""
Integration test: referral intake list and workflow actions.
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

ACK_FIELDS = {"acknowledgment_status", "acknowledged_by", "acknowledgment_date"}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def facility_id(client):
    return client.post("/facilities", json={"name": "Referral Facility"}).json()["id"]


def _referral(client, facility_id, **overrides) -> dict:
    payload = {
        "referral_date": "2025-03-01",
        "referral_source": "Cleveland Clinic Abu Dhabi",
        "patient_name": "Aisha Khan",
        "patient_contact": "+971501112233",
        "preliminary_needs": "Wound care, IV antibiotics",
    }
    payload.update(overrides)
    resp = client.post(f"/facilities/{facility_id}/referrals", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_new_referral_starts_pending_and_new(client, facility_id):
    referral = _referral(client, facility_id, acknowledgment_status="Processed", referral_status="Accepted")
    assert referral["acknowledgment_status"] == "Pending"
    assert referral["referral_status"] == "New"
    assert referral["initial_contact_completed"] is False
    assert referral["documentation_prepared"] is False


def test_acknowledge_changes_only_acknowledgment_fields(client, facility_id):
    before = _referral(client, facility_id)
    resp = client.post(f"/referrals/{before['id']}/acknowledge", json={"acknowledged_by": "Nurse Supervisor Sara"})
    assert resp.status_code == 200
    after = resp.json()

    assert after["acknowledgment_status"] == "Acknowledged"
    assert after["acknowledged_by"] == "Nurse Supervisor Sara"
    assert after["acknowledgment_date"] is not None
    assert {k: v for k, v in after.items() if k not in ACK_FIELDS} == \
        {k: v for k, v in before.items() if k not in ACK_FIELDS}


def test_acknowledgment_track(client, facility_id):
    rid = _referral(client, facility_id)["id"]
    assert client.post(f"/referrals/{rid}/processed").status_code == 409
    client.post(f"/referrals/{rid}/acknowledge", json={"acknowledged_by": "Sara"})
    assert client.post(f"/referrals/{rid}/acknowledge", json={"acknowledged_by": "Sara"}).status_code == 409
    resp = client.post(f"/referrals/{rid}/processed")
    assert resp.status_code == 200
    assert resp.json()["acknowledgment_status"] == "Processed"
    assert resp.json()["referral_status"] == "New"


def test_status_track(client, facility_id):
    rid = _referral(client, facility_id)["id"]
    assert client.post(f"/referrals/{rid}/status", json={"referral_status": "Accepted"}).status_code == 409
    assert client.post(f"/referrals/{rid}/status", json={"referral_status": "New"}).status_code == 409

    resp = client.post(f"/referrals/{rid}/status",
                       json={"referral_status": "In Progress", "status_notes": "Assessment booked"})
    assert resp.status_code == 200
    assert resp.json()["status_notes"] == "Assessment booked"

    assert client.post(f"/referrals/{rid}/status", json={"referral_status": "Accepted"}).status_code == 200
    assert client.post(f"/referrals/{rid}/status", json={"referral_status": "Declined"}).status_code == 409


def test_unknown_status_value(client, facility_id):
    rid = _referral(client, facility_id)["id"]
    assert client.post(f"/referrals/{rid}/status", json={"referral_status": "Archived"}).status_code == 422


def test_staff_and_checklist_actions(client, facility_id):
    rid = _referral(client, facility_id)["id"]
    resp = client.post(f"/referrals/{rid}/assign-staff", json={
        "assigned_nurse_supervisor": "Sara",
        "assigned_case_coordinator": "Yousef",
        "assessment_scheduled_date": "2025-03-05",
    })
    body = resp.json()
    assert body["assigned_nurse_supervisor"] == "Sara"
    assert body["assigned_charge_nurse"] is None
    assert body["assessment_scheduled_date"] == "2025-03-05"

    assert client.post(f"/referrals/{rid}/initial-contact").json()["initial_contact_completed"] is True
    assert client.post(f"/referrals/{rid}/documentation-prepared").json()["documentation_prepared"] is True
    assert client.get(f"/referrals/{rid}").json()["assigned_case_coordinator"] == "Yousef"


def test_checklist_flags_can_be_cleared(client, facility_id):
    rid = _referral(client, facility_id)["id"]
    client.post(f"/referrals/{rid}/initial-contact")
    client.post(f"/referrals/{rid}/documentation-prepared", json={"completed": True})

    resp = client.post(f"/referrals/{rid}/initial-contact", json={"completed": False})
    assert resp.status_code == 200
    assert resp.json()["initial_contact_completed"] is False
    assert resp.json()["documentation_prepared"] is True

    resp = client.post(f"/referrals/{rid}/documentation-prepared", json={"completed": False})
    assert resp.json()["documentation_prepared"] is False


def test_list_search_and_tabs(client, facility_id):
    first = _referral(client, facility_id)
    _referral(client, facility_id, patient_name="Khalid Saeed", referral_source="SEHA")
    client.post(f"/referrals/{first['id']}/status", json={"referral_status": "In Progress"})

    all_items = client.get(f"/facilities/{facility_id}/referrals").json()
    assert len(all_items) == 2

    names = [r["patient_name"] for r in client.get(
        f"/facilities/{facility_id}/referrals", params={"search": "seha"}).json()]
    assert names == ["Khalid Saeed"]

    names = [r["patient_name"] for r in client.get(
        f"/facilities/{facility_id}/referrals", params={"tab": "in-progress"}).json()]
    assert names == ["Aisha Khan"]

    assert client.get(f"/facilities/{facility_id}/referrals", params={"tab": "archived"}).status_code == 400


def test_unknown_referral(client):
    assert client.post("/referrals/missing/initial-contact").status_code == 404
