"""
Deterministic in-memory integration client for development and tests.
"""
from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional

from packages.shared.models import IntegrationResult, PatientRecord

from apps.worker.integrations.base import HealthcareIntegrationClient

Hook = Callable[[], Awaitable[None]]

DEFAULT_SYSTEMS = ("fhir", "emr", "malaffi", "insurance", "laboratory")


class _Failure:
    def __init__(self, error: str | BaseException, times: Optional[int]):
        self.error = error
        self.remaining = times


class MockHealthcareIntegration(HealthcareIntegrationClient):
    """
    Canned responses keyed on the patient id.

    ``fail(method, error)`` makes *method* return a failure result (for a
    string) or raise (for an exception instance), optionally only *times*
    times. ``on_call(method, hook)`` awaits *hook* before responding, which
    lets tests hold a call open.
    """

    def __init__(self, *, system_health: dict[str, bool] | None = None, reference_date: date | None = None):
        self.calls: Counter[str] = Counter()
        self.system_health = dict(system_health or {name: True for name in DEFAULT_SYSTEMS})
        self.reference_date = reference_date or date.today()
        self._failures: dict[str, _Failure] = {}
        self._hooks: dict[str, Hook] = {}

    # ── Test controls ─────────────────────────────────────────────────
    def fail(self, method: str, error: str | BaseException, *, times: int | None = None) -> None:
        if not hasattr(HealthcareIntegrationClient, method):
            raise AttributeError(f"Unknown integration method '{method}'")
        self._failures[method] = _Failure(error, times)

    def heal(self, method: str) -> None:
        self._failures.pop(method, None)

    def on_call(self, method: str, hook: Hook) -> None:
        self._hooks[method] = hook

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def _respond(self, method: str, source: str, data: Callable[[], Any]) -> IntegrationResult:
        self.calls[method] += 1
        hook = self._hooks.get(method)
        if hook is not None:
            await hook()
        failure = self._failures.get(method)
        if failure is not None:
            if failure.remaining is not None:
                failure.remaining -= 1
                if failure.remaining <= 0:
                    del self._failures[method]
            if isinstance(failure.error, BaseException):
                raise failure.error
            return IntegrationResult.fail(f"{source.upper()}_ERROR", failure.error, source=source)
        return IntegrationResult.ok(data(), source=source)

    # ── Client surface ────────────────────────────────────────────────
    async def sync_patient_with_fhir(self, patient: PatientRecord) -> IntegrationResult:
        return await self._respond("sync_patient_with_fhir", "fhir", lambda: {
            "resource_id": f"fhir-{patient.id}",
            "version": 1,
            "resources_synced": 1 + len(patient.chronic_conditions),
        })

    async def sync_patient_with_emr(self, patient: PatientRecord) -> IntegrationResult:
        return await self._respond("sync_patient_with_emr", "emr", lambda: {
            "emr_patient_id": f"emr-{patient.id}",
            "records_updated": 3,
        })

    async def sync_patient_with_malaffi(self, emirates_id: str) -> IntegrationResult:
        return await self._respond("sync_patient_with_malaffi", "malaffi", lambda: {
            "exchange_id": f"malaffi-{emirates_id}",
            "sync_status": "active",
            "interoperability_score": 95,
        })

    async def sync_patient_across_all_systems(self, patient_id: str) -> IntegrationResult:
        return await self._respond("sync_patient_across_all_systems", "all_systems", lambda: {
            "systems": {name: self.system_health.get(name, True) for name in ("fhir", "emr", "malaffi")},
            "medical_history": {
                "allergies": ["Penicillin"],
                "conditions": ["Hypertension"],
            },
        })

    async def sync_comprehensive_patient_data(self, patient_id: str) -> IntegrationResult:
        return await self._respond("sync_comprehensive_patient_data", "comprehensive", lambda: {
            "current_medications": [
                {"name": "Metformin", "dose": "500 mg", "frequency": "twice daily"},
                {"name": "Lisinopril", "dose": "10 mg", "frequency": "daily"},
            ],
            "active_care_plans": [
                {"plan_id": f"cp-{patient_id}-1", "title": "Diabetes management", "status": "active"},
            ],
            "medical_history": {"conditions": ["Diabetes Type 2"]},
        })

    async def get_comprehensive_patient_summary(self, patient_id: str) -> IntegrationResult:
        return await self._respond("get_comprehensive_patient_summary", "summary", lambda: {
            "patient_id": patient_id,
            "recent_encounters": 2,
            "open_care_gaps": [],
            "risk_level": "moderate",
        })

    async def get_medication_adherence(self, patient_id: str) -> IntegrationResult:
        return await self._respond("get_medication_adherence", "medications", lambda: {
            "adherence_rate": 0.92,
            "missed_doses_last_30_days": 2,
        })

    async def get_documents(
        self,
        patient_id: str,
        date_from: date,
        confidentiality_level: str = "standard",
    ) -> IntegrationResult:
        def _docs() -> dict[str, Any]:
            docs = [
                {"document_id": f"doc-{patient_id}-1", "title": "Nursing assessment", "created_on": self.reference_date.isoformat()},
                {"document_id": f"doc-{patient_id}-2", "title": "Care plan review", "created_on": (self.reference_date - timedelta(days=30)).isoformat()},
                {"document_id": f"doc-{patient_id}-1", "title": "Nursing assessment", "created_on": self.reference_date.isoformat()},
                {"document_id": f"doc-{patient_id}-3", "title": "Admission summary", "created_on": (self.reference_date - timedelta(days=200)).isoformat()},
            ]
            kept = [d for d in docs if date.fromisoformat(d["created_on"]) >= date_from]
            return {"documents": kept, "confidentiality_level": confidentiality_level}

        return await self._respond("get_documents", "documents", _docs)

    async def validate_medication_prescription(self, patient_id: str, medications: list[Any]) -> IntegrationResult:
        return await self._respond("validate_medication_prescription", "medications", lambda: {
            "valid": True,
            "checked": len(medications),
            "interactions": [],
        })

    async def create_clinical_documentation_with_emr(self, patient_id: str, documentation: dict[str, Any]) -> IntegrationResult:
        return await self._respond("create_clinical_documentation_with_emr", "clinical", lambda: {
            "documentation_id": f"clin-{patient_id}",
            "status": "created",
            "created_on": self.reference_date.isoformat(),
        })

    async def get_healthcare_integration_status(self) -> IntegrationResult:
        return await self._respond("get_healthcare_integration_status", "status", lambda: {
            "systems": dict(self.system_health),
        })

    async def verify_insurance_eligibility(self, patient: PatientRecord) -> IntegrationResult:
        return await self._respond("verify_insurance_eligibility", "insurance", lambda: {
            "eligible": True,
            "provider": patient.insurance_provider,
            "policy_number": patient.insurance_number,
            "copay_amount": 50,
            "prior_auth_required": False,
            "network_status": "in-network",
        })

    async def get_laboratory_results(self, patient_id: str) -> IntegrationResult:
        return await self._respond("get_laboratory_results", "laboratory", lambda: {
            "recent_results": [
                {"test": "HbA1c", "value": 7.2, "unit": "%", "reference_range": "<7.0", "status": "High"},
                {"test": "Glucose", "value": 145, "unit": "mg/dL", "reference_range": "70-100", "status": "High"},
            ],
            "trends": {"hba1c": "Improving", "glucose": "Stable"},
        })
