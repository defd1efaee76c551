"""
Integration client backed by an HTTP gateway.

Calls are blocking ``requests`` calls pushed onto a worker thread so the
sync pipeline's event loop stays responsive.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

import requests

from packages.shared.models import IntegrationResult, PatientRecord

from apps.worker.integrations.base import HealthcareIntegrationClient

logger = logging.getLogger(__name__)


class HttpHealthcareIntegration(HealthcareIntegrationClient):
    def __init__(self, base_url: str, *, timeout: float = 15.0, session: requests.Session | None = None):
        if not base_url:
            raise ValueError("INTEGRATION_BASE_URL must be set for http integration mode")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, source: str, payload: dict[str, Any] | None = None,
                 params: dict[str, Any] | None = None) -> IntegrationResult:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=payload, params=params, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning(f"Integration timeout calling {url}: {exc}")
            return IntegrationResult.fail("TIMEOUT", f"Request timeout contacting {source}", source=source)
        except requests.ConnectionError as exc:
            logger.warning(f"Integration network error calling {url}: {exc}")
            return IntegrationResult.fail("NETWORK_ERROR", f"Network error contacting {source}", source=source)
        except requests.RequestException as exc:
            return IntegrationResult.fail("REQUEST_ERROR", str(exc) or "Unknown error", source=source)

        if resp.status_code in (502, 503, 504):
            return IntegrationResult.fail(
                f"HTTP_{resp.status_code}",
                f"Temporary gateway failure from {source} (HTTP {resp.status_code})",
                source=source,
            )
        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            message = None
            if isinstance(body, dict):
                err = body.get("error")
                message = err.get("message") if isinstance(err, dict) else body.get("detail")
            return IntegrationResult.fail(
                f"HTTP_{resp.status_code}",
                message or f"{source} returned HTTP {resp.status_code}",
                source=source,
                details=body,
            )

        # Gateways may already return the {success, data, error} envelope.
        if isinstance(body, dict) and "success" in body:
            if body.get("success"):
                return IntegrationResult.ok(body.get("data"), source=source)
            err = body.get("error") or {}
            return IntegrationResult.fail(
                err.get("code", "INTEGRATION_ERROR"),
                err.get("message") or "Unknown error",
                source=source,
                details=err.get("details"),
            )
        return IntegrationResult.ok(body, source=source)

    async def _call(self, method: str, path: str, source: str, payload: dict[str, Any] | None = None,
                    params: dict[str, Any] | None = None) -> IntegrationResult:
        return await asyncio.to_thread(self._request, method, path, source, payload, params)

    async def sync_patient_with_fhir(self, patient: PatientRecord) -> IntegrationResult:
        return await self._call("POST", "/fhir/patients/sync", "fhir", patient.model_dump(mode="json"))

    async def sync_patient_with_emr(self, patient: PatientRecord) -> IntegrationResult:
        return await self._call("POST", "/emr/patients/sync", "emr", patient.model_dump(mode="json"))

    async def sync_patient_with_malaffi(self, emirates_id: str) -> IntegrationResult:
        return await self._call("POST", "/malaffi/patients/sync", "malaffi", {"emirates_id": emirates_id})

    async def sync_patient_across_all_systems(self, patient_id: str) -> IntegrationResult:
        return await self._call("POST", f"/patients/{patient_id}/sync-all", "all_systems")

    async def sync_comprehensive_patient_data(self, patient_id: str) -> IntegrationResult:
        return await self._call("POST", f"/patients/{patient_id}/sync-comprehensive", "comprehensive")

    async def get_comprehensive_patient_summary(self, patient_id: str) -> IntegrationResult:
        return await self._call("GET", f"/patients/{patient_id}/summary", "summary")

    async def get_medication_adherence(self, patient_id: str) -> IntegrationResult:
        return await self._call("GET", f"/patients/{patient_id}/medication-adherence", "medications")

    async def get_documents(
        self,
        patient_id: str,
        date_from: date,
        confidentiality_level: str = "standard",
    ) -> IntegrationResult:
        params = {"date_from": date_from.isoformat(), "confidentiality_level": confidentiality_level}
        return await self._call("GET", f"/patients/{patient_id}/documents", "documents", params=params)

    async def validate_medication_prescription(self, patient_id: str, medications: list[Any]) -> IntegrationResult:
        return await self._call(
            "POST", f"/patients/{patient_id}/medications/validate", "medications", {"medications": medications}
        )

    async def create_clinical_documentation_with_emr(self, patient_id: str, documentation: dict[str, Any]) -> IntegrationResult:
        return await self._call("POST", f"/patients/{patient_id}/clinical-documentation", "clinical", documentation)

    async def get_healthcare_integration_status(self) -> IntegrationResult:
        return await self._call("GET", "/status", "status")

    async def verify_insurance_eligibility(self, patient: PatientRecord) -> IntegrationResult:
        payload = {
            "member_id": patient.insurance_number,
            "member_name": patient.full_name_en,
            "date_of_birth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
            "insurance_provider": patient.insurance_provider,
            "service_type": "homecare",
        }
        return await self._call("POST", "/insurance/eligibility", "insurance", payload)

    async def get_laboratory_results(self, patient_id: str) -> IntegrationResult:
        return await self._call("GET", f"/patients/{patient_id}/lab-results", "laboratory")
