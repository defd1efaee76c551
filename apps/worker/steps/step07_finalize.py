"""
Step 07 - Final validation and metrics.
"""
from __future__ import annotations

from packages.shared.models import PatientRecord, SyncResult, Warning

from apps.worker.sync.scoring import (
    compliance_score,
    data_completeness,
    integration_overall,
    recommendations,
)


def final_validation(result: SyncResult) -> list[Warning]:
    """Cross-check the merged record before it is scored."""
    warnings: list[Warning] = []
    if not result.demographics:
        warnings.append(Warning(code="EMPTY_DEMOGRAPHICS", message="No demographics in merged record"))
    if not result.integration_health:
        warnings.append(Warning(code="NO_INTEGRATION_HEALTH", message="Integration health unknown"))
    if result.fhir_mapping is None:
        warnings.append(Warning(code="NO_FHIR_MAPPING", message="FHIR mapping not produced", system="malaffi"))
    ids = [d.get("document_id") for d in result.recent_documents]
    if len(ids) != len(set(ids)):
        warnings.append(Warning(code="DUPLICATE_DOCUMENTS", message="Duplicate documents in merged record"))
    return warnings


def generate_metrics(patient: PatientRecord, result: SyncResult) -> SyncResult:
    completeness = data_completeness(patient)
    overall = integration_overall(result.integration_health)
    return result.model_copy(update={
        "integration_score": round(overall, 4),
        "data_completeness": completeness,
        "compliance_score": compliance_score(completeness, overall, len(result.errors)),
        "recommendations": recommendations(patient, result.integration_health, completeness),
    })
