"""
Step 04 - Summary retrieval and compliance audit.
"""
from __future__ import annotations

import logging
from typing import Any

from packages.shared.errors import SyncCancelled, error_text
from packages.shared.models import PatientRecord, Warning

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.sync.cancellation import CancellationToken
from apps.worker.sync.scoring import required_fields

logger = logging.getLogger(__name__)


def fallback_summary(patient: PatientRecord) -> dict[str, Any]:
    return {
        "patient_id": patient.id,
        "name": patient.full_name_en,
        "conditions": list(patient.chronic_conditions),
        "allergies": list(patient.allergies),
        "source": "local",
    }


async def retrieve_summary(
    client: HealthcareIntegrationClient,
    patient: PatientRecord,
    token: CancellationToken,
) -> tuple[dict[str, Any], list[Warning]]:
    warnings: list[Warning] = []
    try:
        result = await token.guard(client.get_comprehensive_patient_summary(patient.id))
    except SyncCancelled:
        raise
    except Exception as exc:
        logger.warning(f"Summary retrieval failed, using local fallback: {error_text(exc)}")
        warnings.append(Warning(
            code="SUMMARY_FALLBACK",
            message=f"Patient summary unavailable ({error_text(exc)}); built from local data",
            system="summary",
        ))
        return fallback_summary(patient), warnings

    if not result.success or not isinstance(result.data, dict):
        warnings.append(Warning(
            code="SUMMARY_FALLBACK",
            message=f"Patient summary unavailable ({result.error_message}); built from local data",
            system="summary",
        ))
        return fallback_summary(patient), warnings
    return result.data, warnings


def audit_compliance(patient: PatientRecord, *, errors: list[str]) -> dict[str, Any]:
    """Local audit of identity completeness and sync error load."""
    fields = required_fields(patient)
    findings = [f"Missing {name}" for name, ok in fields.items() if not ok]
    findings.extend(errors)
    checks_passed = sum(fields.values())
    return {
        "checks_total": len(fields),
        "checks_passed": checks_passed,
        "score": round(checks_passed / len(fields) * 100),
        "findings": findings,
        "doh_compliant": not findings,
    }
