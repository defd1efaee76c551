"""
Audit trail for sync activity.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

audit_logger = logging.getLogger("careline.audit")


class AuditEntry(BaseModel):
    action: str
    patient_id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    outcome: str = "success"
    details: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditService:
    """Keeps a bounded in-memory trail and mirrors every entry to the audit logger."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._entries: list[AuditEntry] = []

    def record(self, action: str, patient_id: str, **kwargs: Any) -> AuditEntry:
        entry = AuditEntry(action=action, patient_id=patient_id, **kwargs)
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]
        audit_logger.info(
            "audit action=%s patient_id=%s session_id=%s user_id=%s outcome=%s",
            entry.action,
            entry.patient_id,
            entry.session_id,
            entry.user_id,
            entry.outcome,
        )
        return entry

    def entries(self, patient_id: str | None = None) -> list[AuditEntry]:
        if patient_id is None:
            return list(self._entries)
        return [e for e in self._entries if e.patient_id == patient_id]
