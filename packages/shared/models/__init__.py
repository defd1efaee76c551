from .common import Address, IntegrationError, IntegrationResult, Warning
from .domain import PatientRecord, SyncConfig, SyncResult, SyncSession, SyncStep
from .enums import (
    AcknowledgmentStatus,
    EpisodeStatus,
    FormType,
    Gender,
    HomeboundStatus,
    LifecycleStatus,
    PatientStatus,
    ReferralStatus,
    SyncPhase,
)

__all__ = [
    "AcknowledgmentStatus",
    "Address",
    "EpisodeStatus",
    "FormType",
    "Gender",
    "HomeboundStatus",
    "IntegrationError",
    "IntegrationResult",
    "LifecycleStatus",
    "PatientRecord",
    "PatientStatus",
    "ReferralStatus",
    "SyncConfig",
    "SyncPhase",
    "SyncResult",
    "SyncSession",
    "SyncStep",
    "Warning",
]
