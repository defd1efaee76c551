"""
API route: Episodes of care (timeline events and DoH forms)
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from apps.api.authz import RequestIdentity, get_request_identity
from apps.api.routes.patients import load_patient
from packages.db.database import get_db
from packages.db.models import Episode, EpisodeEvent, EpisodeForm, utcnow
from packages.shared.models import EpisodeStatus, FormType

router = APIRouter(tags=["episodes"])

FORM_STATUSES = {"draft", "completed", "submitted"}


class CreateEpisodeRequest(BaseModel):
    start_date: date
    primary_diagnosis: Optional[str] = None


class UpdateEpisodeRequest(BaseModel):
    status: Optional[EpisodeStatus] = None
    end_date: Optional[date] = None


class CreateEventRequest(BaseModel):
    occurred_at: datetime
    event_type: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    performed_by: Optional[str] = None


class CreateFormRequest(BaseModel):
    form_type: FormType
    status: str = "draft"
    data: dict[str, Any] = Field(default_factory=dict)


class EpisodeResponse(BaseModel):
    id: str
    patient_id: str
    episode_number: int
    status: str
    start_date: str
    end_date: Optional[str]
    primary_diagnosis: Optional[str]
    created_at: str


class EventResponse(BaseModel):
    id: str
    episode_id: str
    occurred_at: str
    event_type: str
    title: str
    description: Optional[str]
    performed_by: Optional[str]


class FormResponse(BaseModel):
    id: str
    episode_id: str
    form_type: str
    status: str
    submitted_at: Optional[str]
    data: dict[str, Any]


class EpisodeDetailResponse(BaseModel):
    episode: EpisodeResponse
    timeline: list[EventResponse]
    forms: dict[str, list[FormResponse]]


def _episode_response(e: Episode) -> EpisodeResponse:
    return EpisodeResponse(
        id=e.id,
        patient_id=e.patient_id,
        episode_number=e.episode_number,
        status=e.status,
        start_date=e.start_date.isoformat(),
        end_date=e.end_date.isoformat() if e.end_date else None,
        primary_diagnosis=e.primary_diagnosis,
        created_at=e.created_at.isoformat(),
    )


def _event_response(ev: EpisodeEvent) -> EventResponse:
    return EventResponse(
        id=ev.id,
        episode_id=ev.episode_id,
        occurred_at=ev.occurred_at.isoformat(),
        event_type=ev.event_type,
        title=ev.title,
        description=ev.description,
        performed_by=ev.performed_by,
    )


def _form_response(f: EpisodeForm) -> FormResponse:
    return FormResponse(
        id=f.id,
        episode_id=f.episode_id,
        form_type=f.form_type,
        status=f.status,
        submitted_at=f.submitted_at.isoformat() if f.submitted_at else None,
        data=dict(f.data_json or {}),
    )


def _load_episode(db: Session, episode_id: str, identity: RequestIdentity | None) -> Episode:
    episode = db.query(Episode).filter_by(id=episode_id).first()
    if not episode:
        raise HTTPException(status_code=404, detail="Episode not found")
    load_patient(db, episode.patient_id, identity)
    return episode


@router.post("/patients/{patient_id}/episodes", response_model=EpisodeResponse, status_code=201)
def create_episode(
    patient_id: str,
    req: CreateEpisodeRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    patient = load_patient(db, patient_id, identity)
    last_number = db.query(func.max(Episode.episode_number)).filter(Episode.patient_id == patient.id).scalar()
    episode = Episode(
        patient_id=patient.id,
        episode_number=(last_number or 0) + 1,
        status=EpisodeStatus.ACTIVE.value,
        start_date=req.start_date,
        primary_diagnosis=req.primary_diagnosis,
    )
    db.add(episode)
    db.flush()
    return _episode_response(episode)


@router.get("/patients/{patient_id}/episodes", response_model=list[EpisodeResponse])
def list_episodes(
    patient_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    patient = load_patient(db, patient_id, identity)
    rows = db.query(Episode).filter_by(patient_id=patient.id).order_by(Episode.episode_number.desc()).all()
    return [_episode_response(e) for e in rows]


@router.get("/episodes/{episode_id}", response_model=EpisodeDetailResponse)
def get_episode(
    episode_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Episode read view: timeline in chronological order, forms grouped by type."""
    episode = _load_episode(db, episode_id, identity)
    timeline = sorted(episode.events, key=lambda ev: (ev.occurred_at, ev.id))

    forms: dict[str, list[FormResponse]] = {}
    for form in sorted(episode.forms, key=lambda f: (f.form_type, f.id)):
        forms.setdefault(form.form_type, []).append(_form_response(form))

    return EpisodeDetailResponse(
        episode=_episode_response(episode),
        timeline=[_event_response(ev) for ev in timeline],
        forms=forms,
    )


@router.patch("/episodes/{episode_id}", response_model=EpisodeResponse)
def update_episode(
    episode_id: str,
    req: UpdateEpisodeRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    episode = _load_episode(db, episode_id, identity)
    if req.status is not None:
        episode.status = req.status.value
    if req.end_date is not None:
        if req.end_date < episode.start_date:
            raise HTTPException(status_code=400, detail="end_date cannot be before start_date")
        episode.end_date = req.end_date
    db.flush()
    return _episode_response(episode)


@router.post("/episodes/{episode_id}/events", response_model=EventResponse, status_code=201)
def add_event(
    episode_id: str,
    req: CreateEventRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    episode = _load_episode(db, episode_id, identity)
    event = EpisodeEvent(
        episode_id=episode.id,
        occurred_at=req.occurred_at,
        event_type=req.event_type,
        title=req.title,
        description=req.description,
        performed_by=req.performed_by,
    )
    db.add(event)
    db.flush()
    return _event_response(event)


@router.post("/episodes/{episode_id}/forms", response_model=FormResponse, status_code=201)
def add_form(
    episode_id: str,
    req: CreateFormRequest,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    episode = _load_episode(db, episode_id, identity)
    if req.status not in FORM_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unsupported form status '{req.status}'")
    form = EpisodeForm(
        episode_id=episode.id,
        form_type=req.form_type.value,
        status=req.status,
        submitted_at=utcnow() if req.status == "submitted" else None,
        data_json=req.data,
    )
    db.add(form)
    db.flush()
    return _form_response(form)
