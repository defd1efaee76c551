"""
Patient lifecycle and discharge readiness rules.
"""
from __future__ import annotations

from packages.shared.errors import InvalidTransition
from packages.shared.models import LifecycleStatus

DISCHARGE_CHECKLIST_ITEMS: tuple[str, ...] = (
    "medication_reconciliation",
    "caregiver_training",
    "follow_up_appointment",
    "equipment_arranged",
    "patient_education",
    "discharge_summary",
)


class UnknownChecklistItem(KeyError):
    pass


def normalize_checklist(raw: dict | None) -> dict[str, bool]:
    """Full checklist with every known item present; unknown stored keys are dropped."""
    raw = raw or {}
    return {key: bool(raw.get(key, False)) for key in DISCHARGE_CHECKLIST_ITEMS}


def update_checklist(current: dict | None, updates: dict[str, bool]) -> dict[str, bool]:
    unknown = sorted(k for k in updates if k not in DISCHARGE_CHECKLIST_ITEMS)
    if unknown:
        raise UnknownChecklistItem(", ".join(unknown))
    merged = normalize_checklist(current)
    for key, value in updates.items():
        merged[key] = bool(value)
    return merged


def readiness_percentage(checklist: dict | None) -> int:
    items = normalize_checklist(checklist)
    done = sum(1 for v in items.values() if v)
    return round(done / len(items) * 100)


def check_lifecycle_change(current: str, target: str, checklist: dict | None) -> LifecycleStatus:
    """
    Any lifecycle status can be chosen directly, except that discharge
    requires a fully completed discharge checklist.
    """
    tgt = LifecycleStatus(target)
    if tgt == LifecycleStatus.DISCHARGED and readiness_percentage(checklist) < 100:
        raise InvalidTransition(current, tgt.value, kind="lifecycle_status")
    return tgt
