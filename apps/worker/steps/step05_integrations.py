"""
Step 05 - Per-system integrations (FHIR, EMR, Malaffi, insurance, laboratory).
Every call here is best-effort: failures become warnings.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from packages.shared.models import PatientRecord, Warning
from packages.shared.schema_validator import validate_fhir_mapping

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.steps.common import as_dict, call_best_effort
from apps.worker.sync.cancellation import CancellationToken
from apps.worker.sync.fhir_mapping import build_fhir_mapping

logger = logging.getLogger(__name__)


async def integrate_fhir(client: HealthcareIntegrationClient, patient: PatientRecord,
                         token: CancellationToken, warnings: list[Warning]) -> Optional[dict[str, Any]]:
    result = await call_best_effort(
        token, client.sync_patient_with_fhir(patient),
        code="FHIR_SYNC_WARNING", label="FHIR sync", system="fhir", warnings=warnings,
    )
    return as_dict(result.data) if result else None


async def integrate_emr(client: HealthcareIntegrationClient, patient: PatientRecord,
                        token: CancellationToken, warnings: list[Warning]) -> Optional[dict[str, Any]]:
    result = await call_best_effort(
        token, client.sync_patient_with_emr(patient),
        code="EMR_SYNC_WARNING", label="EMR sync", system="emr", warnings=warnings,
    )
    return as_dict(result.data) if result else None


async def integrate_malaffi(client: HealthcareIntegrationClient, patient: PatientRecord,
                            token: CancellationToken, warnings: list[Warning]) -> Optional[dict[str, Any]]:
    """
    Exchange with Malaffi and attach the FHIR R4 Patient/Condition mapping.
    A mapping that fails schema validation is kept but flagged.
    """
    result = await call_best_effort(
        token, client.sync_patient_with_malaffi(patient.emirates_id or ""),
        code="MALAFFI_SYNC_WARNING", label="Malaffi sync", system="malaffi", warnings=warnings,
    )
    if result is None:
        return None

    mapping = build_fhir_mapping(patient)
    is_valid, errors = validate_fhir_mapping(mapping)
    if not is_valid:
        for err in errors[:10]:
            warnings.append(Warning(code="FHIR_MAPPING_INVALID", message=err[:500], system="malaffi"))
        logger.warning(f"FHIR mapping for patient {patient.id} failed validation with {len(errors)} errors")

    resource_count = 1 + len(mapping["conditions"])
    return {
        "exchange": as_dict(result.data),
        "mapping": mapping,
        "mapping_valid": is_valid,
        "resources_exchanged": resource_count,
        "failed_mappings": 0 if is_valid else resource_count,
    }


async def integrate_insurance(client: HealthcareIntegrationClient, patient: PatientRecord,
                              token: CancellationToken, warnings: list[Warning]) -> Optional[dict[str, Any]]:
    if not (patient.insurance_provider and patient.insurance_number):
        return None
    result = await call_best_effort(
        token, client.verify_insurance_eligibility(patient),
        code="INSURANCE_WARNING", label="Insurance verification", system="insurance", warnings=warnings,
    )
    return as_dict(result.data) if result else None


async def integrate_laboratory(client: HealthcareIntegrationClient, patient: PatientRecord,
                               token: CancellationToken, warnings: list[Warning]) -> Optional[dict[str, Any]]:
    result = await call_best_effort(
        token, client.get_laboratory_results(patient.id),
        code="LABORATORY_WARNING", label="Laboratory integration", system="laboratory", warnings=warnings,
    )
    return as_dict(result.data) if result else None
