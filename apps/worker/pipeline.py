"""
Sync pipeline: one attempt of the EMR/FHIR/Malaffi patient sync.

The coordinator owns retries and session lifecycle; this module runs the
ordered steps once and reports progress through a ``SyncContext``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional

from packages.shared.errors import PatientValidationError, SyncFailure, error_text
from packages.shared.models import (
    PatientRecord,
    SyncConfig,
    SyncPhase,
    SyncResult,
    SyncSession,
    SyncStep,
    Warning,
)

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.services.audit import AuditService
from apps.worker.services.cache import CacheService, sync_cache_key
from apps.worker.services.performance import PerformanceMonitor
from apps.worker.services.security import AccessDenied, SecurityService
from apps.worker.steps.common import as_dict, call_best_effort
from apps.worker.steps.step01_validate import validate_patient
from apps.worker.steps.step02_prepare import prepare_sync_payload
from apps.worker.steps.step03_multi_system import sync_all_systems
from apps.worker.steps.step04_summary import audit_compliance, retrieve_summary
from apps.worker.steps.step05_integrations import (
    integrate_emr,
    integrate_fhir,
    integrate_insurance,
    integrate_laboratory,
    integrate_malaffi,
)
from apps.worker.steps.step06_clinical import (
    create_clinical_documentation,
    sync_documents,
    sync_medications,
    validate_medications,
)
from apps.worker.steps.step07_finalize import final_validation, generate_metrics
from apps.worker.sync.cancellation import CancellationToken
from apps.worker.sync.scoring import data_completeness
from apps.worker.sync.state import StepRecorded, WarningRaised, reduce

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    client: HealthcareIntegrationClient
    cache: CacheService
    audit: AuditService
    security: SecurityService
    config: SyncConfig = field(default_factory=SyncConfig)
    today: Callable[[], date] = date.today


class SyncContext:
    """Progress handle for one attempt. Every step is a cancellation checkpoint."""

    def __init__(self, session: SyncSession, token: CancellationToken,
                 on_change: Optional[Callable[[SyncSession], None]] = None):
        self.session = session
        self.token = token
        self.partial: dict[str, Any] = {}
        self._on_change = on_change

    def _apply(self, event) -> None:
        self.session = reduce(self.session, event)
        if self._on_change is not None:
            self._on_change(self.session)

    def step(self, name: str, progress: int, phase: SyncPhase, message: str,
             metadata: Optional[dict[str, Any]] = None) -> None:
        self.token.raise_if_cancelled()
        self._apply(StepRecorded(step=SyncStep(
            step=name, progress=progress, message=message, phase=phase, metadata=metadata,
        )))

    def warn(self, warnings: list[Warning]) -> None:
        for warning in warnings:
            self._apply(WarningRaised(warning=warning))


def local_snapshot(patient: PatientRecord, warning: Warning) -> SyncResult:
    """Result built purely from local data, used when a fresh sync is not cached."""
    completeness = data_completeness(patient)
    payload, data_hash = prepare_sync_payload(patient)
    return SyncResult(
        patient_id=patient.id,
        demographics=payload["demographics"],
        medical_history=payload["medical_history"],
        data_completeness=completeness,
        compliance_score=completeness,
        warnings=[warning],
        data_hash=data_hash,
        local_only=True,
    )


async def run_sync_attempt(
    ctx: SyncContext,
    patient: PatientRecord,
    services: SyncServices,
    *,
    fresh: bool = False,
    role: str = "system",
) -> SyncResult:
    """
    Execute the ordered sync steps once and return the merged result.
    Raises PatientValidationError, SyncFailure or SyncCancelled.
    """
    sid = ctx.session.id
    token = ctx.token
    client = services.client
    perf = PerformanceMonitor()
    start_time = time.perf_counter()
    warnings: list[Warning] = []
    errors: list[str] = []

    # ── Step 1: Access validation ─────────────────────────────────────
    logger.info(f"[{sid}] Step 1: Access validation")
    ctx.step("access_validation", 1, SyncPhase.INITIALIZING, "Validating access permissions")
    try:
        services.security.validate_access(patient.id, role=role)
    except AccessDenied as exc:
        raise SyncFailure(str(exc)) from exc

    # ── Step 2: Initialization ────────────────────────────────────────
    logger.info(f"[{sid}] Step 2: Initialization")
    ctx.step("initialization", 6, SyncPhase.INITIALIZING, "Initializing comprehensive EMR sync")
    ctx.partial["patient_id"] = patient.id

    # ── Step 3: Pre-flight ────────────────────────────────────────────
    logger.info(f"[{sid}] Step 3: Pre-flight checks")
    ctx.step("preflight", 8, SyncPhase.CONNECTING, "Running pre-flight checks")
    if not patient.id:
        raise SyncFailure("Patient identity missing")

    # ── Step 4: Validation ────────────────────────────────────────────
    logger.info(f"[{sid}] Step 4: Patient validation")
    ctx.step("validation", 10, SyncPhase.CONNECTING, "Validating patient data")
    missing, step_warnings = validate_patient(patient)
    if missing:
        raise PatientValidationError(missing)
    warnings.extend(step_warnings)
    ctx.warn(step_warnings)

    # ── Step 5: Cache lookup ──────────────────────────────────────────
    logger.info(f"[{sid}] Step 5: Cache lookup")
    ctx.step("cache_lookup", 11, SyncPhase.CONNECTING, "Checking for recently synced data")
    if fresh:
        cached = services.cache.get(sync_cache_key(patient.id))
        if isinstance(cached, SyncResult):
            logger.info(f"[{sid}] Recent sync cached; skipping external calls")
            return cached.model_copy(update={"cache_hit": True})
        logger.info(f"[{sid}] Recent sync not cached; serving local snapshot")
        return local_snapshot(patient, Warning(
            code="LOCAL_SNAPSHOT",
            message="Patient synced recently; returning local data without external calls",
        ))

    # ── Step 6: Integration health check ──────────────────────────────
    logger.info(f"[{sid}] Step 6: Integration health check")
    ctx.step("health_check", 12, SyncPhase.AUTHENTICATING, "Checking integration health")
    health: dict[str, bool] = {}
    step_warnings = []
    with perf.span("health_check"):
        status = await call_best_effort(
            token, client.get_healthcare_integration_status(),
            code="HEALTH_CHECK_WARNING", label="Integration health check", system="status",
            warnings=step_warnings,
        )
    if status is not None:
        health = {k: bool(v) for k, v in as_dict(as_dict(status.data).get("systems")).items()}
    warnings.extend(step_warnings)
    ctx.warn(step_warnings)

    # ── Step 7: Data preparation ──────────────────────────────────────
    logger.info(f"[{sid}] Step 7: Data preparation")
    ctx.step("data_preparation", 20, SyncPhase.GENERATING, "Preparing sync payload")
    payload, data_hash = prepare_sync_payload(patient)
    ctx.partial["demographics"] = payload["demographics"]
    ctx.partial["data_hash"] = data_hash

    # ── Step 8: Multi-system sync ─────────────────────────────────────
    logger.info(f"[{sid}] Step 8: Multi-system sync")
    ctx.step("multi_system_sync", 25, SyncPhase.PROCESSING, "Synchronizing across all systems")
    with perf.span("multi_system_sync"):
        merged, sync_errors = await sync_all_systems(client, patient.id, token)
    errors.extend(sync_errors)
    for name, ok in merged["systems"].items():
        health[name] = health.get(name, True) and ok
    medical_history = merged["medical_history"]
    for item in patient.allergies:
        if item not in medical_history["allergies"]:
            medical_history["allergies"].append(item)
    for item in patient.chronic_conditions:
        if item not in medical_history["conditions"]:
            medical_history["conditions"].append(item)
    ctx.partial["medical_history"] = medical_history
    ctx.partial["current_medications"] = merged["current_medications"]
    ctx.partial["errors"] = list(errors)

    # ── Step 9: Summary retrieval ─────────────────────────────────────
    logger.info(f"[{sid}] Step 9: Summary retrieval")
    ctx.step("summary_retrieval", 30, SyncPhase.ANALYZING, "Retrieving comprehensive patient summary")
    summary, step_warnings = await retrieve_summary(client, patient, token)
    warnings.extend(step_warnings)
    ctx.warn(step_warnings)
    ctx.partial["summary"] = summary

    # ── Step 10: Compliance audit ─────────────────────────────────────
    logger.info(f"[{sid}] Step 10: Compliance audit")
    ctx.step("compliance_audit", 34, SyncPhase.ANALYZING, "Auditing DoH compliance")
    compliance = audit_compliance(patient, errors=errors)
    ctx.partial["compliance_audit"] = compliance

    # ── Steps 11-15: Per-system integrations ──────────────────────────
    integrations: dict[str, Optional[dict[str, Any]]] = {}
    for number, (name, progress, label, system, integrate) in enumerate((
        ("fhir_sync", 38, "Synchronizing with FHIR server", "fhir", integrate_fhir),
        ("emr_sync", 42, "Synchronizing with EMR", "emr", integrate_emr),
        ("malaffi_sync", 46, "Exchanging with Malaffi using FHIR R4", "malaffi", integrate_malaffi),
        ("insurance_integration", 50, "Verifying insurance eligibility", "insurance", integrate_insurance),
        ("laboratory_integration", 54, "Retrieving laboratory results", "laboratory", integrate_laboratory),
    ), start=11):
        logger.info(f"[{sid}] Step {number}: {label}")
        ctx.step(name, progress, SyncPhase.INTEGRATING, label)
        step_warnings = []
        with perf.span(name):
            data = await integrate(client, patient, token, step_warnings)
        integrations[system] = data
        warnings.extend(step_warnings)
        ctx.warn(step_warnings)
        attempted = not (system == "insurance" and not (patient.insurance_provider and patient.insurance_number))
        if attempted:
            health[system] = health.get(system, True) and data is not None
    malaffi = integrations.get("malaffi")
    ctx.partial["integrations"] = {k: v is not None for k, v in integrations.items()}

    # ── Step 16: Medication sync ──────────────────────────────────────
    logger.info(f"[{sid}] Step 16: Medication sync")
    ctx.step("medication_sync", 60, SyncPhase.SYNCHRONIZING, "Synchronizing medication adherence")
    step_warnings = []
    adherence = await sync_medications(client, patient, token, step_warnings)

    # ── Step 17: Document sync ────────────────────────────────────────
    logger.info(f"[{sid}] Step 17: Document sync")
    ctx.step("document_sync", 66, SyncPhase.SYNCHRONIZING, "Synchronizing recent documents")
    documents = await sync_documents(
        client, patient, token, step_warnings,
        today=services.today(), lookback_days=services.config.document_lookback_days,
    )
    ctx.partial["recent_documents"] = documents

    # ── Step 18: Medication validation ────────────────────────────────
    logger.info(f"[{sid}] Step 18: Medication validation")
    ctx.step("medication_validation", 72, SyncPhase.SYNCHRONIZING, "Validating medication prescriptions")
    med_validation = await validate_medications(client, patient, merged["current_medications"], token, step_warnings)

    # ── Step 19: Clinical documentation ───────────────────────────────
    logger.info(f"[{sid}] Step 19: Clinical documentation")
    ctx.step("clinical_documentation", 78, SyncPhase.SYNCHRONIZING, "Creating clinical documentation in EMR")
    clinical = await create_clinical_documentation(client, patient, summary, token, step_warnings)
    warnings.extend(step_warnings)
    ctx.warn(step_warnings)

    result = SyncResult(
        patient_id=patient.id,
        demographics=payload["demographics"],
        medical_history=medical_history,
        current_medications=merged["current_medications"],
        medication_adherence={**adherence, "validation": med_validation} if med_validation else adherence,
        recent_documents=documents,
        active_care_plans=merged["active_care_plans"],
        integration_health=health,
        fhir_mapping=malaffi["mapping"] if malaffi else None,
        insurance=integrations.get("insurance"),
        laboratory=integrations.get("laboratory"),
        clinical_documentation=clinical,
        compliance_audit=compliance,
        errors=errors,
        data_hash=data_hash,
    )

    # ── Step 20: Final validation ─────────────────────────────────────
    logger.info(f"[{sid}] Step 20: Final validation")
    ctx.step("final_validation", 84, SyncPhase.VALIDATING, "Validating merged record")
    step_warnings = final_validation(result)
    warnings.extend(step_warnings)
    ctx.warn(step_warnings)

    # ── Step 21: Metrics generation ───────────────────────────────────
    logger.info(f"[{sid}] Step 21: Metrics generation")
    ctx.step("metrics_generation", 90, SyncPhase.OPTIMIZING, "Generating quality metrics")
    result = generate_metrics(patient, result)
    ctx.partial["data_completeness"] = result.data_completeness
    ctx.partial["compliance_score"] = result.compliance_score

    # ── Step 22: Finalization ─────────────────────────────────────────
    logger.info(f"[{sid}] Step 22: Finalization")
    ctx.step("finalization", 96, SyncPhase.FINALIZING, "Caching results and writing audit trail")
    result = result.model_copy(update={
        "warnings": warnings,
        "total_sync_seconds": round(time.perf_counter() - start_time, 4),
    })
    try:
        services.cache.set(sync_cache_key(patient.id), result, ttl=services.config.cache_ttl_seconds)
        services.audit.record(
            "emr_sync",
            patient.id,
            session_id=sid,
            outcome="success",
            details={
                "data_completeness": result.data_completeness,
                "compliance_score": result.compliance_score,
                "warnings": len(warnings),
                "errors": len(errors),
                "timings": perf.snapshot(),
            },
        )
    except Exception as exc:
        raise SyncFailure(f"Finalization failed: {error_text(exc)}") from exc

    token.raise_if_cancelled()
    logger.info(
        f"[{sid}] Sync attempt finished: completeness={result.data_completeness}, "
        f"compliance={result.compliance_score}, warnings={len(warnings)}, errors={len(errors)}"
    )
    return result
