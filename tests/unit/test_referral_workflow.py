"""
Unit tests for referral workflow rules.
"""
import pytest

from packages.shared.errors import InvalidTransition
from packages.shared.models import AcknowledgmentStatus, ReferralStatus
from packages.shared.referral_workflow import (
    matches_filter,
    next_acknowledgment,
    next_referral_status,
)


class TestAcknowledgment:
    def test_forward_path(self):
        assert next_acknowledgment("Pending", "Acknowledged") == AcknowledgmentStatus.ACKNOWLEDGED
        assert next_acknowledgment("Acknowledged", "Processed") == AcknowledgmentStatus.PROCESSED

    @pytest.mark.parametrize("current,target", [
        ("Pending", "Processed"),
        ("Pending", "Pending"),
        ("Processed", "Acknowledged"),
        ("Acknowledged", "Pending"),
    ])
    def test_illegal_moves(self, current, target):
        with pytest.raises(InvalidTransition) as exc:
            next_acknowledgment(current, target)
        assert exc.value.kind == "acknowledgment_status"


class TestReferralStatus:
    @pytest.mark.parametrize("current,target", [
        ("New", "In Progress"),
        ("New", "Declined"),
        ("In Progress", "Accepted"),
        ("In Progress", "Declined"),
    ])
    def test_legal_moves(self, current, target):
        assert next_referral_status(current, target) == ReferralStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("New", "Accepted"),
        ("New", "New"),
        ("Accepted", "Declined"),
        ("Declined", "In Progress"),
        ("In Progress", "New"),
    ])
    def test_illegal_moves(self, current, target):
        with pytest.raises(InvalidTransition):
            next_referral_status(current, target)


class TestListFilter:
    def test_search_matches_name_or_source(self):
        assert matches_filter("Aisha Khan", "Cleveland Clinic", "New", search="aisha")
        assert matches_filter("Aisha Khan", "Cleveland Clinic", "New", search="CLINIC")
        assert not matches_filter("Aisha Khan", "Cleveland Clinic", "New", search="mayo")

    def test_tab_filters_by_status(self):
        assert matches_filter("A", "B", "In Progress", tab="in-progress")
        assert not matches_filter("A", "B", "New", tab="accepted")
        assert matches_filter("A", "B", "Declined", tab="all")

    def test_unknown_tab(self):
        with pytest.raises(ValueError):
            matches_filter("A", "B", "New", tab="archived")
