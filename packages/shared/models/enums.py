from enum import Enum


class PatientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCHARGED = "discharged"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class LifecycleStatus(str, Enum):
    REFERRAL = "referral"
    ASSESSMENT = "assessment"
    ADMISSION = "admission"
    ACTIVE_CARE = "active_care"
    DISCHARGE_PLANNING = "discharge_planning"
    DISCHARGED = "discharged"
    READMISSION = "readmission"


class HomeboundStatus(str, Enum):
    QUALIFIED = "qualified"
    NOT_QUALIFIED = "not_qualified"
    PENDING_ASSESSMENT = "pending_assessment"
    REASSESSMENT_REQUIRED = "reassessment_required"


class AcknowledgmentStatus(str, Enum):
    PENDING = "Pending"
    ACKNOWLEDGED = "Acknowledged"
    PROCESSED = "Processed"


class ReferralStatus(str, Enum):
    NEW = "New"
    IN_PROGRESS = "In Progress"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"


class SyncPhase(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    GENERATING = "generating"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    INTEGRATING = "integrating"
    SYNCHRONIZING = "synchronizing"
    VALIDATING = "validating"
    OPTIMIZING = "optimizing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    APPLIED = "applied"
    ERROR = "error"
    SYNCING = "syncing"  # externally observed in-flight alias


class EpisodeStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FormType(str, Enum):
    REFERRAL = "referral"
    ASSESSMENT = "assessment"
    MONITORING = "monitoring"
    CARE_PLAN = "care_plan"
    HOMEBOUND_ASSESSMENT = "homebound_assessment"
