"""
API route: Referrals (intake list and workflow actions)
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from apps.api.authz import RequestIdentity, assert_facility_access, get_request_identity
from packages.db.database import get_db
from packages.db.models import Facility, Referral, utcnow
from packages.shared.errors import InvalidTransition
from packages.shared.models import AcknowledgmentStatus, ReferralStatus
from packages.shared.referral_workflow import (
    STATUS_TABS,
    matches_filter,
    next_acknowledgment,
    next_referral_status,
)

router = APIRouter(tags=["referrals"])


class CreateReferralRequest(BaseModel):
    referral_date: date
    referral_source: str = Field(min_length=1, max_length=120)
    referral_source_contact: Optional[str] = None
    patient_name: str = Field(min_length=1, max_length=200)
    patient_contact: Optional[str] = None
    preliminary_needs: Optional[str] = None
    insurance_info: Optional[str] = None
    geographic_location: Optional[str] = None
    # Accepted for payload compatibility; new referrals always start Pending/New.
    acknowledgment_status: Optional[str] = None
    referral_status: Optional[str] = None


class AssignStaffRequest(BaseModel):
    assigned_nurse_supervisor: Optional[str] = None
    assigned_charge_nurse: Optional[str] = None
    assigned_case_coordinator: Optional[str] = None
    assessment_scheduled_date: Optional[date] = None


class UpdateStatusRequest(BaseModel):
    referral_status: ReferralStatus
    status_notes: Optional[str] = None


class ChecklistFlagRequest(BaseModel):
    completed: bool = True


class AcknowledgeRequest(BaseModel):
    acknowledged_by: str = Field(min_length=1, max_length=120)


class ReferralResponse(BaseModel):
    id: str
    facility_id: str
    referral_date: str
    referral_source: str
    referral_source_contact: Optional[str]
    patient_name: str
    patient_contact: Optional[str]
    preliminary_needs: Optional[str]
    insurance_info: Optional[str]
    geographic_location: Optional[str]
    acknowledgment_status: str
    acknowledged_by: Optional[str]
    acknowledgment_date: Optional[str]
    referral_status: str
    status_notes: Optional[str]
    assigned_nurse_supervisor: Optional[str]
    assigned_charge_nurse: Optional[str]
    assigned_case_coordinator: Optional[str]
    assessment_scheduled_date: Optional[str]
    initial_contact_completed: bool
    documentation_prepared: bool
    created_at: str


def referral_response(r: Referral) -> ReferralResponse:
    return ReferralResponse(
        id=r.id,
        facility_id=r.facility_id,
        referral_date=r.referral_date.isoformat(),
        referral_source=r.referral_source,
        referral_source_contact=r.referral_source_contact,
        patient_name=r.patient_name,
        patient_contact=r.patient_contact,
        preliminary_needs=r.preliminary_needs,
        insurance_info=r.insurance_info,
        geographic_location=r.geographic_location,
        acknowledgment_status=r.acknowledgment_status,
        acknowledged_by=r.acknowledged_by,
        acknowledgment_date=r.acknowledgment_date.isoformat() if r.acknowledgment_date else None,
        referral_status=r.referral_status,
        status_notes=r.status_notes,
        assigned_nurse_supervisor=r.assigned_nurse_supervisor,
        assigned_charge_nurse=r.assigned_charge_nurse,
        assigned_case_coordinator=r.assigned_case_coordinator,
        assessment_scheduled_date=r.assessment_scheduled_date.isoformat() if r.assessment_scheduled_date else None,
        initial_contact_completed=bool(r.initial_contact_completed),
        documentation_prepared=bool(r.documentation_prepared),
        created_at=r.created_at.isoformat(),
    )


def _load_referral(db: Session, referral_id: str, identity: RequestIdentity | None) -> Referral:
    referral = db.query(Referral).filter_by(id=referral_id).first()
    if not referral:
        raise HTTPException(status_code=404, detail="Referral not found")
    assert_facility_access(identity, referral.facility_id)
    return referral


def _conflict(exc: InvalidTransition) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


@router.get("/facilities/{facility_id}/referrals", response_model=list[ReferralResponse])
def get_all_referrals(
    facility_id: str,
    search: str = "",
    tab: str = "all",
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Referrals for the intake list, newest first, filtered by search text and status tab."""
    assert_facility_access(identity, facility_id)
    if tab not in STATUS_TABS:
        raise HTTPException(status_code=400, detail=f"Unknown referral tab '{tab}'")
    rows = (
        db.query(Referral)
        .filter_by(facility_id=facility_id)
        .order_by(Referral.created_at.desc())
        .all()
    )
    return [
        referral_response(r)
        for r in rows
        if matches_filter(r.patient_name, r.referral_source, r.referral_status, search=search, tab=tab)
    ]


@router.post("/facilities/{facility_id}/referrals", response_model=ReferralResponse, status_code=201)
def create_referral(
    facility_id: str,
    req: CreateReferralRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    assert_facility_access(identity, facility_id)
    if not db.query(Facility).filter_by(id=facility_id).first():
        raise HTTPException(status_code=404, detail="Facility not found")

    referral = Referral(
        facility_id=facility_id,
        referral_date=req.referral_date,
        referral_source=req.referral_source,
        referral_source_contact=req.referral_source_contact,
        patient_name=req.patient_name,
        patient_contact=req.patient_contact,
        preliminary_needs=req.preliminary_needs,
        insurance_info=req.insurance_info,
        geographic_location=req.geographic_location,
        acknowledgment_status=AcknowledgmentStatus.PENDING.value,
        referral_status=ReferralStatus.NEW.value,
        initial_contact_completed=False,
        documentation_prepared=False,
    )
    db.add(referral)
    db.flush()
    return referral_response(referral)


@router.get("/referrals/{referral_id}", response_model=ReferralResponse)
def get_referral(
    referral_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    return referral_response(_load_referral(db, referral_id, identity))


@router.post("/referrals/{referral_id}/assign-staff", response_model=ReferralResponse)
def assign_staff(
    referral_id: str,
    req: AssignStaffRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    referral = _load_referral(db, referral_id, identity)
    for field, value in req.model_dump(exclude_unset=True).items():
        setattr(referral, field, value)
    db.flush()
    return referral_response(referral)


@router.post("/referrals/{referral_id}/initial-contact", response_model=ReferralResponse)
def mark_initial_contact(
    referral_id: str,
    req: ChecklistFlagRequest = ChecklistFlagRequest(),
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    referral = _load_referral(db, referral_id, identity)
    referral.initial_contact_completed = req.completed
    db.flush()
    return referral_response(referral)


@router.post("/referrals/{referral_id}/documentation-prepared", response_model=ReferralResponse)
def mark_documentation_prepared(
    referral_id: str,
    req: ChecklistFlagRequest = ChecklistFlagRequest(),
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    referral = _load_referral(db, referral_id, identity)
    referral.documentation_prepared = req.completed
    db.flush()
    return referral_response(referral)


@router.post("/referrals/{referral_id}/status", response_model=ReferralResponse)
def update_status(
    referral_id: str,
    req: UpdateStatusRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    referral = _load_referral(db, referral_id, identity)
    try:
        target = next_referral_status(referral.referral_status, req.referral_status.value)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    referral.referral_status = target.value
    if req.status_notes is not None:
        referral.status_notes = req.status_notes
    db.flush()
    return referral_response(referral)


@router.post("/referrals/{referral_id}/acknowledge", response_model=ReferralResponse)
def acknowledge_referral(
    referral_id: str,
    req: AcknowledgeRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Acknowledge receipt. Only the acknowledgment fields change."""
    referral = _load_referral(db, referral_id, identity)
    try:
        target = next_acknowledgment(referral.acknowledgment_status, AcknowledgmentStatus.ACKNOWLEDGED.value)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    referral.acknowledgment_status = target.value
    referral.acknowledged_by = req.acknowledged_by
    referral.acknowledgment_date = utcnow()
    db.flush()
    return referral_response(referral)


@router.post("/referrals/{referral_id}/processed", response_model=ReferralResponse)
def mark_processed(
    referral_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    referral = _load_referral(db, referral_id, identity)
    try:
        target = next_acknowledgment(referral.acknowledgment_status, AcknowledgmentStatus.PROCESSED.value)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    referral.acknowledgment_status = target.value
    db.flush()
    return referral_response(referral)
