"""
API route: Facilities
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from packages.db.database import get_db
from packages.db.models import Facility
from apps.api.authz import (
    RequestIdentity,
    access_enforcement_enabled,
    assert_facility_access,
    get_request_identity,
)

router = APIRouter(prefix="/facilities", tags=["facilities"])


class CreateFacilityRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class FacilityResponse(BaseModel):
    id: str
    name: str
    created_at: str


def _to_response(facility: Facility) -> FacilityResponse:
    return FacilityResponse(
        id=facility.id,
        name=facility.name,
        created_at=facility.created_at.isoformat(),
    )


@router.post("", response_model=FacilityResponse, status_code=201)
def create_facility(
    req: CreateFacilityRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    if access_enforcement_enabled():
        raise HTTPException(status_code=403, detail="Facility creation is disabled when ACCESS_ENFORCEMENT=true")
    facility = Facility(name=req.name)
    db.add(facility)
    db.flush()
    return _to_response(facility)


@router.get("", response_model=list[FacilityResponse])
def list_facilities(
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """List facilities visible to the caller."""
    query = db.query(Facility)
    if identity is not None:
        query = query.filter_by(id=identity.facility_id)
    return [_to_response(f) for f in query.order_by(Facility.created_at).all()]


@router.get("/{facility_id}", response_model=FacilityResponse)
def get_facility(
    facility_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    assert_facility_access(identity, facility_id)
    facility = db.query(Facility).filter_by(id=facility_id).first()
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found")
    return _to_response(facility)
