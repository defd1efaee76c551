"""
Completeness and compliance scoring for synced patient records.
"""
from __future__ import annotations

from packages.shared.models import PatientRecord

REQUIRED_WEIGHT = 70
OPTIONAL_WEIGHT = 30


def _filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def required_fields(patient: PatientRecord) -> dict[str, bool]:
    return {
        "emirates_id": _filled(patient.emirates_id),
        "first_name_en": _filled(patient.first_name_en),
        "last_name_en": _filled(patient.last_name_en),
        "date_of_birth": _filled(patient.date_of_birth),
        "phone_number": _filled(patient.phone_number),
    }


def optional_fields(patient: PatientRecord) -> dict[str, bool]:
    return {
        "email": _filled(patient.email),
        "address.street": patient.address is not None and _filled(patient.address.street),
        "insurance_number": _filled(patient.insurance_number),
        "blood_type": _filled(patient.blood_type),
        "allergies": len(patient.allergies) > 0,
    }


def data_completeness(patient: PatientRecord) -> int:
    """Weighted completeness: required fields carry 70 points, optional 30."""
    req = required_fields(patient)
    opt = optional_fields(patient)
    score = sum(req.values()) / len(req) * REQUIRED_WEIGHT + sum(opt.values()) / len(opt) * OPTIONAL_WEIGHT
    return round(score)


def integration_overall(health: dict[str, bool]) -> float:
    """Fraction of external systems reporting healthy, 0.0 when none reported."""
    if not health:
        return 0.0
    return sum(1 for ok in health.values() if ok) / len(health)


def compliance_score(completeness: int, overall: float, error_count: int) -> int:
    return round(max(completeness, overall * 100, max(0, 100 - 20 * error_count)))


def recommendations(patient: PatientRecord, health: dict[str, bool], completeness: int) -> list[str]:
    recs: list[str] = []
    missing_optional = [name for name, ok in optional_fields(patient).items() if not ok]
    if completeness < 100 and missing_optional:
        recs.append(f"Complete optional patient fields: {', '.join(missing_optional)}")
    if not required_fields(patient)["phone_number"]:
        recs.append("Add a contact phone number for care coordination")
    down = sorted(name for name, ok in health.items() if not ok)
    if down:
        recs.append(f"Investigate integration health for: {', '.join(down)}")
    if patient.insurance_provider and not patient.insurance_number:
        recs.append("Record the insurance policy number to enable eligibility checks")
    return recs
