"""
FHIR R4 resource mapping for the Malaffi exchange.
"""
from __future__ import annotations

from typing import Any

from packages.shared.models import PatientRecord

EMIRATES_ID_SYSTEM = "urn:oid:2.16.784.1.1.1.1"
IDENTIFIER_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0203"
CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_VERIFICATION_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-ver-status"
CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
SNOMED_SYSTEM = "http://snomed.info/sct"
# Generic "disorder" concept; free-text display carries the condition name.
SNOMED_GENERIC_CONDITION = "404684003"


def _fhir_gender(gender: str | None) -> str:
    if gender in ("male", "female"):
        return gender
    return "other"


def map_patient(patient: PatientRecord) -> dict[str, Any]:
    telecom: list[dict[str, str]] = []
    if patient.phone_number:
        telecom.append({"system": "phone", "value": patient.phone_number, "use": "mobile"})
    if patient.email:
        telecom.append({"system": "email", "value": patient.email, "use": "home"})

    address: list[dict[str, Any]] = []
    if patient.address is not None:
        address.append({
            "use": "home",
            "line": [patient.address.street] if patient.address.street else [],
            "city": patient.address.city,
            "state": patient.address.emirate,
            "postalCode": patient.address.postal_code,
            "country": "AE",
        })

    return {
        "resourceType": "Patient",
        "id": patient.id,
        "identifier": [{
            "use": "official",
            "type": {"coding": [{"system": IDENTIFIER_TYPE_SYSTEM, "code": "NI", "display": "National identifier"}]},
            "system": EMIRATES_ID_SYSTEM,
            "value": patient.emirates_id or "",
        }],
        "active": patient.status.value == "active",
        "name": [{"use": "official", "family": patient.last_name_en or "", "given": [patient.first_name_en or ""]}],
        "telecom": telecom,
        "gender": _fhir_gender(patient.gender),
        "birthDate": patient.date_of_birth.isoformat() if patient.date_of_birth else "",
        "address": address,
    }


def map_conditions(patient: PatientRecord) -> list[dict[str, Any]]:
    onset = patient.created_at.isoformat() if patient.created_at else None
    return [
        {
            "resourceType": "Condition",
            "id": f"condition-{patient.id}-{index}",
            "clinicalStatus": {"coding": [{"system": CONDITION_CLINICAL_SYSTEM, "code": "active"}]},
            "verificationStatus": {"coding": [{"system": CONDITION_VERIFICATION_SYSTEM, "code": "confirmed"}]},
            "category": [{"coding": [{
                "system": CONDITION_CATEGORY_SYSTEM,
                "code": "problem-list-item",
                "display": "Problem List Item",
            }]}],
            "code": {"coding": [{"system": SNOMED_SYSTEM, "code": SNOMED_GENERIC_CONDITION, "display": condition}]},
            "subject": {"reference": f"Patient/{patient.id}"},
            "onsetDateTime": onset,
        }
        for index, condition in enumerate(patient.chronic_conditions)
    ]


def build_fhir_mapping(patient: PatientRecord) -> dict[str, Any]:
    return {"patient": map_patient(patient), "conditions": map_conditions(patient)}
