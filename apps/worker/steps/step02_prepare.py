"""
Step 02 - Data preparation.
Normalize the local record into the payload sent to external systems.
"""
from __future__ import annotations

from typing import Any

from packages.shared.models import PatientRecord

from apps.worker.services.security import SecurityService


def prepare_sync_payload(patient: PatientRecord) -> tuple[dict[str, Any], str]:
    """Return (payload, sha256 integrity hash of the payload)."""
    demographics = {
        "emirates_id": patient.emirates_id,
        "first_name_en": patient.first_name_en,
        "last_name_en": patient.last_name_en,
        "first_name_ar": patient.first_name_ar,
        "last_name_ar": patient.last_name_ar,
        "date_of_birth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
        "gender": patient.gender,
        "nationality": patient.nationality,
        "phone_number": patient.phone_number,
        "email": patient.email,
        "address": patient.address.model_dump() if patient.address else None,
        "blood_type": patient.blood_type,
    }
    payload = {
        "patient_id": patient.id,
        "demographics": demographics,
        "medical_history": {
            "allergies": sorted(set(patient.allergies)),
            "conditions": sorted(set(patient.chronic_conditions)),
        },
        "insurance": {
            "provider": patient.insurance_provider,
            "type": patient.insurance_type,
            "number": patient.insurance_number,
        },
    }
    return payload, SecurityService.data_hash(payload)
