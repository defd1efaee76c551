"""
Integration test: one auto-sync sweep of the worker runner over stored patients.
"""
from __future__ import annotations

import asyncio
import os
from datetime import date, timedelta

import pytest

# Setup test environment before imports
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test_careline_api.db")

from sqlalchemy import inspect

from packages.db.database import engine, get_session, init_db
from packages.db.models import Base, Facility, Patient, utcnow
from apps.worker.integrations.mock import MockHealthcareIntegration
from apps.worker.pipeline_persistence import record_sync_success
from apps.worker.runner import sweep
from apps.worker.sync.coordinator import SyncCoordinator


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


async def _no_sleep(_seconds: float) -> None:
    return None


def _seed() -> dict[str, str]:
    with get_session() as session:
        facility = Facility(name="Sweep Facility")
        session.add(facility)
        session.flush()
        rows = {
            "fresh": Patient(facility_id=facility.id, emirates_id="784-1980-1000001-1", first_name_en="Noura",
                             last_name_en="Saif", date_of_birth=date(1980, 2, 2), phone_number="+971501000001",
                             last_synced_at=utcnow() - timedelta(minutes=2)),
            "never": Patient(facility_id=facility.id, emirates_id="784-1975-1000002-2", first_name_en="Hamad",
                             last_name_en="Obaid", date_of_birth=date(1975, 6, 6), phone_number="+971501000002"),
            "invalid": Patient(facility_id=facility.id, emirates_id=None, first_name_en="Reem",
                               last_name_en="Ali", date_of_birth=date(1990, 3, 3)),
            "discharged": Patient(facility_id=facility.id, emirates_id="784-1950-1000003-3", first_name_en="Ahmed",
                                  last_name_en="Rashid", date_of_birth=date(1950, 1, 1), status="discharged"),
        }
        session.add_all(rows.values())
        session.flush()
        return {key: row.id for key, row in rows.items()}


def test_sweep_syncs_stale_and_skips_fresh():
    ids = _seed()
    coordinator = SyncCoordinator(MockHealthcareIntegration(), sleep=_no_sleep, on_success=record_sync_success)

    counts = asyncio.run(sweep(coordinator))

    assert counts == {"synced": 1, "skipped": 1, "failed": 1}
    assert coordinator.list_sessions(ids["fresh"]) == []
    assert coordinator.list_sessions(ids["discharged"]) == []
    failed = coordinator.list_sessions(ids["invalid"])[-1]
    assert "emirates_id" in failed.errors[-1]

    with get_session() as session:
        assert session.get(Patient, ids["never"]).last_synced_at is not None
        assert session.get(Patient, ids["invalid"]).last_synced_at is None


def test_second_sweep_skips_everything_synced():
    _seed()
    coordinator = SyncCoordinator(MockHealthcareIntegration(), sleep=_no_sleep, on_success=record_sync_success)
    asyncio.run(sweep(coordinator))
    counts = asyncio.run(sweep(coordinator))
    assert counts["synced"] == 0
    assert counts["skipped"] == 2
    assert counts["failed"] == 1


def test_init_db_creates_sync_timestamp_column():
    Base.metadata.drop_all(bind=engine)
    init_db()
    columns = {c["name"] for c in inspect(engine).get_columns("patients")}
    assert "last_synced_at" in columns
