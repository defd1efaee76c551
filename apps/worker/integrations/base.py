"""
Client interface for the external healthcare integration gateway.

Every method is a coroutine returning an ``IntegrationResult``; expected
failures come back as ``success=False`` results, while unexpected ones may
raise and are handled by the sync pipeline.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from packages.shared.models import IntegrationResult, PatientRecord


class HealthcareIntegrationClient(ABC):
    @abstractmethod
    async def sync_patient_with_fhir(self, patient: PatientRecord) -> IntegrationResult: ...

    @abstractmethod
    async def sync_patient_with_emr(self, patient: PatientRecord) -> IntegrationResult: ...

    @abstractmethod
    async def sync_patient_with_malaffi(self, emirates_id: str) -> IntegrationResult: ...

    @abstractmethod
    async def sync_patient_across_all_systems(self, patient_id: str) -> IntegrationResult: ...

    @abstractmethod
    async def sync_comprehensive_patient_data(self, patient_id: str) -> IntegrationResult: ...

    @abstractmethod
    async def get_comprehensive_patient_summary(self, patient_id: str) -> IntegrationResult: ...

    @abstractmethod
    async def get_medication_adherence(self, patient_id: str) -> IntegrationResult: ...

    @abstractmethod
    async def get_documents(
        self,
        patient_id: str,
        date_from: date,
        confidentiality_level: str = "standard",
    ) -> IntegrationResult: ...

    @abstractmethod
    async def validate_medication_prescription(
        self, patient_id: str, medications: list[Any]
    ) -> IntegrationResult: ...

    @abstractmethod
    async def create_clinical_documentation_with_emr(
        self, patient_id: str, documentation: dict[str, Any]
    ) -> IntegrationResult: ...

    @abstractmethod
    async def get_healthcare_integration_status(self) -> IntegrationResult: ...

    @abstractmethod
    async def verify_insurance_eligibility(self, patient: PatientRecord) -> IntegrationResult: ...

    @abstractmethod
    async def get_laboratory_results(self, patient_id: str) -> IntegrationResult: ...
