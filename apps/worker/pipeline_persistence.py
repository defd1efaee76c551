"""
Persistence helpers for the sync pipeline.

Sync sessions themselves are never stored; only the patient's
``last_synced_at`` timestamp is written after a successful sync.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from packages.db.database import get_session
from packages.db.models import Patient as PatientORM
from packages.shared.models import Address, PatientRecord


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def patient_to_record(row: PatientORM) -> PatientRecord:
    address = Address(**row.address_json) if row.address_json else None
    return PatientRecord(
        id=row.id,
        emirates_id=row.emirates_id,
        first_name_en=row.first_name_en,
        last_name_en=row.last_name_en,
        first_name_ar=row.first_name_ar,
        last_name_ar=row.last_name_ar,
        date_of_birth=row.date_of_birth,
        gender=row.gender,
        nationality=row.nationality,
        phone_number=row.phone_number,
        email=row.email,
        address=address,
        insurance_provider=row.insurance_provider,
        insurance_type=row.insurance_type,
        insurance_number=row.insurance_number,
        blood_type=row.blood_type,
        allergies=list(row.allergies_json or []),
        chronic_conditions=list(row.chronic_conditions_json or []),
        status=row.status or "active",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def last_synced_epoch(row: PatientORM) -> Optional[float]:
    synced = _as_utc(row.last_synced_at)
    return synced.timestamp() if synced else None


def record_sync_success(patient_id: str, synced_at: datetime) -> None:
    with get_session() as session:
        row = session.query(PatientORM).filter_by(id=patient_id).first()
        if row:
            row.last_synced_at = synced_at


def list_auto_sync_candidates(limit: int = 100) -> list[tuple[PatientRecord, Optional[float]]]:
    """Active patients, least recently synced first (never-synced before all others)."""
    with get_session() as session:
        rows = (
            session.query(PatientORM)
            .filter(PatientORM.status == "active")
            .order_by(PatientORM.last_synced_at.is_(None).desc(), PatientORM.last_synced_at.asc())
            .limit(limit)
            .all()
        )
        return [(patient_to_record(row), last_synced_epoch(row)) for row in rows]
