from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import Address, Warning
from .enums import PatientStatus, SyncPhase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatientRecord(BaseModel):
    """Read-only view of a patient as seen by the sync pipeline."""
    id: str
    emirates_id: Optional[str] = None
    first_name_en: Optional[str] = None
    last_name_en: Optional[str] = None
    first_name_ar: Optional[str] = None
    last_name_ar: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None
    insurance_provider: Optional[str] = None
    insurance_type: Optional[str] = None
    insurance_number: Optional[str] = None
    blood_type: Optional[str] = None
    allergies: list[str] = Field(default_factory=list)
    chronic_conditions: list[str] = Field(default_factory=list)
    status: PatientStatus = PatientStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name_en(self) -> str:
        return " ".join(p for p in (self.first_name_en, self.last_name_en) if p)


class SyncConfig(BaseModel):
    """Knobs for a sync coordinator. Defaults mirror the production policy."""
    freshness_seconds: float = 300.0
    max_retries: int = 3
    retry_base_seconds: float = 1.0
    retry_cap_seconds: float = 30.0
    realtime_events: bool = False
    cache_ttl_seconds: float = 300.0
    document_lookback_days: int = 90


class SyncStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    progress: int = Field(ge=0, le=100)
    message: str
    phase: SyncPhase
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Optional[dict[str, Any]] = None


class SyncResult(BaseModel):
    """Aggregate record merged from every external call of one sync run."""
    patient_id: str
    demographics: dict[str, Any] = Field(default_factory=dict)
    medical_history: dict[str, Any] = Field(default_factory=dict)
    current_medications: list[Any] = Field(default_factory=list)
    medication_adherence: dict[str, Any] = Field(default_factory=dict)
    recent_documents: list[dict[str, Any]] = Field(default_factory=list)
    active_care_plans: list[Any] = Field(default_factory=list)
    integration_health: dict[str, bool] = Field(default_factory=dict)
    integration_score: float = 0.0
    fhir_mapping: Optional[dict[str, Any]] = None
    insurance: Optional[dict[str, Any]] = None
    laboratory: Optional[dict[str, Any]] = None
    clinical_documentation: dict[str, Any] = Field(default_factory=dict)
    compliance_audit: dict[str, Any] = Field(default_factory=dict)
    data_completeness: int = 0
    compliance_score: int = 0
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[Warning] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    data_hash: Optional[str] = None
    cache_hit: bool = False
    local_only: bool = False
    total_sync_seconds: float = 0.0
    sync_timestamp: datetime = Field(default_factory=_utcnow)


class SyncSession(BaseModel):
    """
    Ephemeral record of one sync invocation.

    Instances are immutable; every change goes through the reducer in
    ``apps.worker.sync.state`` which returns a new session.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    status: SyncPhase = SyncPhase.IDLE
    progress: int = 0
    steps: tuple[SyncStep, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[Warning, ...] = ()
    retry_count: int = 0
    force: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[SyncResult] = None
    partial_result: Optional[dict[str, Any]] = None

    @property
    def last_step(self) -> Optional[SyncStep]:
        return self.steps[-1] if self.steps else None

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncPhase.APPLIED, SyncPhase.ERROR)
