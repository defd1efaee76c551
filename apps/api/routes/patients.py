"""
API route: Patients (registration, search, lifecycle, discharge readiness)
"""
from __future__ import annotations

import re
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from apps.api.authz import RequestIdentity, assert_facility_access, get_request_identity
from packages.db.database import get_db
from packages.db.models import Facility, Patient
from packages.shared.errors import InvalidTransition
from packages.shared.lifecycle import (
    UnknownChecklistItem,
    check_lifecycle_change,
    normalize_checklist,
    readiness_percentage,
    update_checklist,
)
from packages.shared.models import Address, Gender, HomeboundStatus, LifecycleStatus, PatientStatus

router = APIRouter(tags=["patients"])

EMIRATES_ID_RE = re.compile(r"^784-\d{4}-\d{7}-\d$")
SORT_COLUMNS = {
    "created_at": Patient.created_at,
    "updated_at": Patient.updated_at,
    "first_name_en": Patient.first_name_en,
    "last_name_en": Patient.last_name_en,
    "date_of_birth": Patient.date_of_birth,
}


class CreatePatientRequest(BaseModel):
    emirates_id: str
    first_name_en: str = Field(min_length=1, max_length=120)
    last_name_en: str = Field(min_length=1, max_length=120)
    first_name_ar: Optional[str] = None
    last_name_ar: Optional[str] = None
    date_of_birth: date
    gender: Optional[Gender] = None
    nationality: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None
    insurance_provider: Optional[str] = None
    insurance_type: Optional[str] = None
    insurance_number: Optional[str] = None
    thiqa_card_number: Optional[str] = None
    blood_type: Optional[str] = None
    allergies: list[str] = Field(default_factory=list)
    chronic_conditions: list[str] = Field(default_factory=list)
    language_preference: str = "en"
    interpreter_required: bool = False

    @field_validator("emirates_id")
    @classmethod
    def _check_emirates_id(cls, value: str) -> str:
        value = value.strip()
        if not EMIRATES_ID_RE.match(value):
            raise ValueError("Emirates ID must match 784-YYYY-NNNNNNN-N")
        return value

    @field_validator("date_of_birth")
    @classmethod
    def _check_dob(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return value


class PatientResponse(BaseModel):
    id: str
    facility_id: str
    emirates_id: Optional[str]
    first_name_en: Optional[str]
    last_name_en: Optional[str]
    first_name_ar: Optional[str]
    last_name_ar: Optional[str]
    date_of_birth: Optional[str]
    gender: Optional[str]
    nationality: Optional[str]
    phone_number: Optional[str]
    email: Optional[str]
    address: Optional[Address]
    insurance_provider: Optional[str]
    insurance_type: Optional[str]
    insurance_number: Optional[str]
    blood_type: Optional[str]
    allergies: list[str]
    chronic_conditions: list[str]
    status: str
    lifecycle_status: str
    homebound_status: str
    last_synced_at: Optional[str]
    created_at: str


class PatientSearchResponse(BaseModel):
    patients: list[PatientResponse]
    total: int
    limit: int
    offset: int


class SuggestionResponse(BaseModel):
    id: str
    label: str
    sublabel: str
    type: str = "patient"


class UpdateLifecycleRequest(BaseModel):
    lifecycle_status: Optional[LifecycleStatus] = None
    homebound_status: Optional[HomeboundStatus] = None


class DischargeReadinessResponse(BaseModel):
    patient_id: str
    items: dict[str, bool]
    readiness_percentage: int
    ready: bool


class UpdateChecklistRequest(BaseModel):
    items: dict[str, bool]


def patient_response(p: Patient) -> PatientResponse:
    return PatientResponse(
        id=p.id,
        facility_id=p.facility_id,
        emirates_id=p.emirates_id,
        first_name_en=p.first_name_en,
        last_name_en=p.last_name_en,
        first_name_ar=p.first_name_ar,
        last_name_ar=p.last_name_ar,
        date_of_birth=p.date_of_birth.isoformat() if p.date_of_birth else None,
        gender=p.gender,
        nationality=p.nationality,
        phone_number=p.phone_number,
        email=p.email,
        address=Address(**p.address_json) if p.address_json else None,
        insurance_provider=p.insurance_provider,
        insurance_type=p.insurance_type,
        insurance_number=p.insurance_number,
        blood_type=p.blood_type,
        allergies=list(p.allergies_json or []),
        chronic_conditions=list(p.chronic_conditions_json or []),
        status=p.status,
        lifecycle_status=p.lifecycle_status,
        homebound_status=p.homebound_status,
        last_synced_at=p.last_synced_at.isoformat() if p.last_synced_at else None,
        created_at=p.created_at.isoformat(),
    )


def load_patient(db: Session, patient_id: str, identity: RequestIdentity | None) -> Patient:
    patient = db.query(Patient).filter_by(id=patient_id).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    assert_facility_access(identity, patient.facility_id)
    return patient


def _text_filter(query_text: str):
    like = f"%{query_text.strip()}%"
    return or_(
        Patient.first_name_en.ilike(like),
        Patient.last_name_en.ilike(like),
        Patient.first_name_ar.ilike(like),
        Patient.last_name_ar.ilike(like),
        Patient.emirates_id.ilike(like),
        Patient.phone_number.ilike(like),
    )


@router.post("/facilities/{facility_id}/patients", response_model=PatientResponse, status_code=201)
def create_patient(
    facility_id: str,
    req: CreatePatientRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    assert_facility_access(identity, facility_id)
    if not db.query(Facility).filter_by(id=facility_id).first():
        raise HTTPException(status_code=404, detail="Facility not found")

    duplicate = db.query(Patient).filter_by(facility_id=facility_id, emirates_id=req.emirates_id).first()
    if duplicate:
        raise HTTPException(status_code=409, detail="A patient with this Emirates ID already exists")

    patient = Patient(
        facility_id=facility_id,
        emirates_id=req.emirates_id,
        first_name_en=req.first_name_en,
        last_name_en=req.last_name_en,
        first_name_ar=req.first_name_ar,
        last_name_ar=req.last_name_ar,
        date_of_birth=req.date_of_birth,
        gender=req.gender.value if req.gender else None,
        nationality=req.nationality,
        phone_number=req.phone_number,
        email=req.email,
        address_json=req.address.model_dump() if req.address else None,
        insurance_provider=req.insurance_provider,
        insurance_type=req.insurance_type,
        insurance_number=req.insurance_number,
        thiqa_card_number=req.thiqa_card_number,
        blood_type=req.blood_type,
        allergies_json=req.allergies,
        chronic_conditions_json=req.chronic_conditions,
        language_preference=req.language_preference,
        interpreter_required=req.interpreter_required,
        status=PatientStatus.ACTIVE.value,
        lifecycle_status=LifecycleStatus.REFERRAL.value,
        homebound_status=HomeboundStatus.PENDING_ASSESSMENT.value,
        discharge_checklist_json=normalize_checklist(None),
    )
    db.add(patient)
    db.flush()
    return patient_response(patient)


@router.get("/facilities/{facility_id}/patients", response_model=PatientSearchResponse)
def search_patients(
    facility_id: str,
    q: str = "",
    status: Optional[PatientStatus] = None,
    gender: Optional[Gender] = None,
    insurance_provider: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Search a facility's patients by name, Emirates ID or phone."""
    assert_facility_access(identity, facility_id)
    if sort_by not in SORT_COLUMNS:
        raise HTTPException(status_code=400, detail=f"Unsupported sort_by '{sort_by}'")
    if sort_order not in {"asc", "desc"}:
        raise HTTPException(status_code=400, detail="sort_order must be 'asc' or 'desc'")

    query = db.query(Patient).filter(Patient.facility_id == facility_id)
    if q.strip():
        query = query.filter(_text_filter(q))
    if status is not None:
        query = query.filter(Patient.status == status.value)
    if gender is not None:
        query = query.filter(Patient.gender == gender.value)
    if insurance_provider:
        query = query.filter(Patient.insurance_provider == insurance_provider)

    total = query.count()
    column = SORT_COLUMNS[sort_by]
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), Patient.id)
    rows = query.offset(offset).limit(limit).all()
    return PatientSearchResponse(
        patients=[patient_response(p) for p in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/facilities/{facility_id}/patients/suggestions", response_model=list[SuggestionResponse])
def get_search_suggestions(
    facility_id: str,
    q: str = "",
    limit: int = Query(default=5, ge=1, le=20),
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    assert_facility_access(identity, facility_id)
    if len(q.strip()) < 2:
        return []
    rows = (
        db.query(Patient)
        .filter(Patient.facility_id == facility_id)
        .filter(_text_filter(q))
        .order_by(Patient.last_name_en, Patient.first_name_en)
        .limit(limit)
        .all()
    )
    return [
        SuggestionResponse(
            id=p.id,
            label=f"{p.first_name_en or ''} {p.last_name_en or ''}".strip(),
            sublabel=p.emirates_id or p.phone_number or "",
        )
        for p in rows
    ]


@router.get("/patients/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    return patient_response(load_patient(db, patient_id, identity))


@router.patch("/patients/{patient_id}/lifecycle", response_model=PatientResponse)
def update_lifecycle(
    patient_id: str,
    req: UpdateLifecycleRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Set lifecycle and/or homebound status. Discharge requires full readiness."""
    patient = load_patient(db, patient_id, identity)
    if req.lifecycle_status is None and req.homebound_status is None:
        raise HTTPException(status_code=400, detail="Nothing to update")

    if req.lifecycle_status is not None:
        try:
            target = check_lifecycle_change(
                patient.lifecycle_status, req.lifecycle_status.value, patient.discharge_checklist_json
            )
        except InvalidTransition as exc:
            raise HTTPException(
                status_code=409,
                detail=f"Discharge requires 100% readiness ({readiness_percentage(patient.discharge_checklist_json)}% complete)",
            ) from exc
        patient.lifecycle_status = target.value
        if target == LifecycleStatus.DISCHARGED:
            patient.status = PatientStatus.DISCHARGED.value
        elif patient.status == PatientStatus.DISCHARGED.value:
            patient.status = PatientStatus.ACTIVE.value

    if req.homebound_status is not None:
        patient.homebound_status = req.homebound_status.value

    db.flush()
    return patient_response(patient)


def _readiness(patient: Patient) -> DischargeReadinessResponse:
    items = normalize_checklist(patient.discharge_checklist_json)
    pct = readiness_percentage(items)
    return DischargeReadinessResponse(patient_id=patient.id, items=items, readiness_percentage=pct, ready=pct == 100)


@router.get("/patients/{patient_id}/discharge-readiness", response_model=DischargeReadinessResponse)
def get_discharge_readiness(
    patient_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    return _readiness(load_patient(db, patient_id, identity))


@router.patch("/patients/{patient_id}/discharge-readiness", response_model=DischargeReadinessResponse)
def update_discharge_readiness(
    patient_id: str,
    req: UpdateChecklistRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    patient = load_patient(db, patient_id, identity)
    try:
        patient.discharge_checklist_json = update_checklist(patient.discharge_checklist_json, req.items)
    except UnknownChecklistItem as exc:
        raise HTTPException(status_code=400, detail=f"Unknown checklist item(s): {exc.args[0]}") from exc
    db.flush()
    return _readiness(patient)
