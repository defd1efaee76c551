"""
Step 06 - Medication, document and clinical documentation sync.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from packages.shared.models import PatientRecord, Warning

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.steps.common import as_dict, as_list, call_best_effort
from apps.worker.sync.cancellation import CancellationToken


def dedupe_documents(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the first occurrence of each document_id, preserving order."""
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for doc in documents:
        doc_id = doc.get("document_id")
        if doc_id is None or doc_id in seen:
            continue
        seen.add(doc_id)
        unique.append(doc)
    return unique


async def sync_medications(client: HealthcareIntegrationClient, patient: PatientRecord,
                           token: CancellationToken, warnings: list[Warning]) -> dict[str, Any]:
    result = await call_best_effort(
        token, client.get_medication_adherence(patient.id),
        code="MEDICATION_SYNC_WARNING", label="Medication adherence", system="medications", warnings=warnings,
    )
    return as_dict(result.data) if result else {}


async def sync_documents(client: HealthcareIntegrationClient, patient: PatientRecord,
                         token: CancellationToken, warnings: list[Warning], *,
                         today: date, lookback_days: int = 90) -> list[dict[str, Any]]:
    date_from = today - timedelta(days=lookback_days)
    result = await call_best_effort(
        token, client.get_documents(patient.id, date_from, "standard"),
        code="DOCUMENT_SYNC_WARNING", label="Document sync", system="documents", warnings=warnings,
    )
    if result is None:
        return []
    return dedupe_documents([d for d in as_list(as_dict(result.data).get("documents")) if isinstance(d, dict)])


async def validate_medications(client: HealthcareIntegrationClient, patient: PatientRecord,
                               medications: list[Any], token: CancellationToken,
                               warnings: list[Warning]) -> dict[str, Any]:
    if not medications:
        return {"valid": True, "checked": 0, "interactions": []}
    result = await call_best_effort(
        token, client.validate_medication_prescription(patient.id, medications),
        code="MEDICATION_VALIDATION_WARNING", label="Medication validation", system="medications",
        warnings=warnings,
    )
    if result is None:
        return {}
    data = as_dict(result.data)
    for interaction in as_list(data.get("interactions")):
        warnings.append(Warning(
            code="MEDICATION_INTERACTION",
            message=f"Medication interaction flagged: {interaction}",
            system="medications",
        ))
    return data


async def create_clinical_documentation(client: HealthcareIntegrationClient, patient: PatientRecord,
                                        summary: dict[str, Any], token: CancellationToken,
                                        warnings: list[Warning]) -> dict[str, Any]:
    documentation = {
        "type": "sync_summary",
        "patient_id": patient.id,
        "summary": summary,
    }
    result = await call_best_effort(
        token, client.create_clinical_documentation_with_emr(patient.id, documentation),
        code="CLINICAL_DOCUMENTATION_WARNING", label="Clinical documentation", system="clinical",
        warnings=warnings,
    )
    return as_dict(result.data) if result else {}
