"""
Referral intake workflow rules.

Two independent status tracks live on a referral:

* acknowledgment: Pending -> Acknowledged -> Processed
* case status:    New -> In Progress -> Accepted, New | In Progress -> Declined

Accepted and Declined are terminal. A same-state update is not a transition.
"""
from __future__ import annotations

from packages.shared.errors import InvalidTransition
from packages.shared.models import AcknowledgmentStatus, ReferralStatus


ACKNOWLEDGMENT_TRANSITIONS: dict[AcknowledgmentStatus, frozenset[AcknowledgmentStatus]] = {
    AcknowledgmentStatus.PENDING: frozenset({AcknowledgmentStatus.ACKNOWLEDGED}),
    AcknowledgmentStatus.ACKNOWLEDGED: frozenset({AcknowledgmentStatus.PROCESSED}),
    AcknowledgmentStatus.PROCESSED: frozenset(),
}

REFERRAL_STATUS_TRANSITIONS: dict[ReferralStatus, frozenset[ReferralStatus]] = {
    ReferralStatus.NEW: frozenset({ReferralStatus.IN_PROGRESS, ReferralStatus.DECLINED}),
    ReferralStatus.IN_PROGRESS: frozenset({ReferralStatus.ACCEPTED, ReferralStatus.DECLINED}),
    ReferralStatus.ACCEPTED: frozenset(),
    ReferralStatus.DECLINED: frozenset(),
}

# Tab keys used by the intake list view.
STATUS_TABS: dict[str, ReferralStatus | None] = {
    "all": None,
    "new": ReferralStatus.NEW,
    "in-progress": ReferralStatus.IN_PROGRESS,
    "accepted": ReferralStatus.ACCEPTED,
    "declined": ReferralStatus.DECLINED,
}


def next_acknowledgment(current: str, target: str) -> AcknowledgmentStatus:
    cur = AcknowledgmentStatus(current)
    tgt = AcknowledgmentStatus(target)
    if tgt not in ACKNOWLEDGMENT_TRANSITIONS[cur]:
        raise InvalidTransition(cur.value, tgt.value, kind="acknowledgment_status")
    return tgt


def next_referral_status(current: str, target: str) -> ReferralStatus:
    cur = ReferralStatus(current)
    tgt = ReferralStatus(target)
    if tgt not in REFERRAL_STATUS_TRANSITIONS[cur]:
        raise InvalidTransition(cur.value, tgt.value, kind="referral_status")
    return tgt


def matches_filter(patient_name: str, referral_source: str, status: str, *, search: str = "", tab: str = "all") -> bool:
    """Free-text match on name or source, then the optional status tab."""
    if tab not in STATUS_TABS:
        raise ValueError(f"Unknown referral tab '{tab}'")
    needle = (search or "").strip().lower()
    if needle and needle not in (patient_name or "").lower() and needle not in (referral_source or "").lower():
        return False
    wanted = STATUS_TABS[tab]
    return wanted is None or status == wanted.value
