"""
Access checks and data integrity hashing for patient sync.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

SYNC_ROLES = frozenset({"nurse", "physician", "care_coordinator", "admin", "system"})


class AccessDenied(Exception):
    pass


class SecurityService:
    def __init__(self, allowed_roles: frozenset[str] = SYNC_ROLES):
        self.allowed_roles = allowed_roles

    def validate_access(self, patient_id: str, *, role: str = "system", facility_id: Optional[str] = None,
                        patient_facility_id: Optional[str] = None) -> None:
        if role not in self.allowed_roles:
            raise AccessDenied(f"Role '{role}' may not sync patient {patient_id}")
        if facility_id and patient_facility_id and facility_id != patient_facility_id:
            raise AccessDenied(f"Cross-facility sync denied for patient {patient_id}")

    @staticmethod
    def data_hash(payload: dict[str, Any]) -> str:
        """SHA-256 of the canonical JSON form of *payload*."""
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
