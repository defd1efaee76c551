"""
Step 01 - Patient validation.
Required identity fields block the sync; contact and clinical gaps only warn.
"""
from __future__ import annotations

from packages.shared.models import PatientRecord, Warning

REQUIRED_SYNC_FIELDS = ("emirates_id", "first_name_en", "last_name_en", "date_of_birth")


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_patient(patient: PatientRecord) -> tuple[list[str], list[Warning]]:
    """
    Return (missing_required_fields, warnings).
    """
    missing = [name for name in REQUIRED_SYNC_FIELDS if _blank(getattr(patient, name))]
    warnings: list[Warning] = []

    if _blank(patient.phone_number):
        warnings.append(Warning(code="MISSING_PHONE", message="Phone number missing; contact options limited"))
    if _blank(patient.email):
        warnings.append(Warning(code="MISSING_EMAIL", message="Email missing; electronic notices unavailable"))
    if patient.address is None or _blank(patient.address.street):
        warnings.append(Warning(code="MISSING_ADDRESS", message="Street address missing; home visit routing limited"))
    if _blank(patient.insurance_number):
        warnings.append(Warning(code="MISSING_INSURANCE_NUMBER", message="Insurance number missing; eligibility cannot be verified"))

    if _blank(patient.blood_type):
        warnings.append(Warning(code="INFO_BLOOD_TYPE", message="Blood type not recorded"))
    if not patient.allergies:
        warnings.append(Warning(code="INFO_ALLERGIES", message="No allergies recorded; confirm with patient"))

    return missing, warnings
