"""
Unit tests for patient lifecycle and discharge readiness.
"""
import pytest

from packages.shared.errors import InvalidTransition
from packages.shared.lifecycle import (
    DISCHARGE_CHECKLIST_ITEMS,
    UnknownChecklistItem,
    check_lifecycle_change,
    normalize_checklist,
    readiness_percentage,
    update_checklist,
)
from packages.shared.models import LifecycleStatus


def _all_done() -> dict[str, bool]:
    return {key: True for key in DISCHARGE_CHECKLIST_ITEMS}


def test_empty_checklist_is_zero():
    assert readiness_percentage(None) == 0
    assert normalize_checklist(None) == {key: False for key in DISCHARGE_CHECKLIST_ITEMS}


def test_readiness_rounds():
    checklist = update_checklist(None, {"caregiver_training": True})
    assert readiness_percentage(checklist) == 17
    checklist = update_checklist(checklist, {"discharge_summary": True, "patient_education": True})
    assert readiness_percentage(checklist) == 50
    assert readiness_percentage(_all_done()) == 100


def test_unknown_item_rejected():
    with pytest.raises(UnknownChecklistItem):
        update_checklist(None, {"paperwork": True})


def test_update_does_not_mutate_input():
    current = {"caregiver_training": True}
    update_checklist(current, {"caregiver_training": False})
    assert current == {"caregiver_training": True}


def test_any_status_except_discharge_is_free():
    assert check_lifecycle_change("referral", "active_care", None) == LifecycleStatus.ACTIVE_CARE
    assert check_lifecycle_change("discharged", "readmission", None) == LifecycleStatus.READMISSION


def test_discharge_requires_full_readiness():
    with pytest.raises(InvalidTransition):
        check_lifecycle_change("discharge_planning", "discharged", {"caregiver_training": True})
    assert check_lifecycle_change("discharge_planning", "discharged", _all_done()) == LifecycleStatus.DISCHARGED


def test_unknown_status_is_a_value_error():
    with pytest.raises(ValueError):
        check_lifecycle_change("referral", "archived", None)
