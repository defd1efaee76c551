"""
API route: EMR sync sessions
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from apps.api.authz import RequestIdentity, get_request_identity, identity_role
from apps.api.routes.patients import load_patient
from apps.worker.pipeline_persistence import last_synced_epoch, patient_to_record
from apps.worker.sync.coordinator import SessionNotFound, SyncCoordinator
from packages.db.database import get_db
from packages.shared.errors import InvalidTransition
from packages.shared.models import PatientRecord, SyncSession

router = APIRouter(tags=["sync"])


class SyncRequest(BaseModel):
    force_sync: bool = False
    wait: bool = True


class SyncStepResponse(BaseModel):
    step: str
    progress: int
    message: str
    phase: str
    timestamp: str


class SyncSessionResponse(BaseModel):
    id: str
    patient_id: str
    status: str
    progress: int
    force: bool
    retry_count: int
    steps: list[SyncStepResponse]
    errors: list[str]
    warnings: list[dict[str, Any]]
    started_at: Optional[str]
    finished_at: Optional[str]
    result: Optional[dict[str, Any]]
    partial_result: Optional[dict[str, Any]]


def session_response(s: SyncSession) -> SyncSessionResponse:
    return SyncSessionResponse(
        id=s.id,
        patient_id=s.patient_id,
        status=s.status.value,
        progress=s.progress,
        force=s.force,
        retry_count=s.retry_count,
        steps=[
            SyncStepResponse(
                step=st.step,
                progress=st.progress,
                message=st.message,
                phase=st.phase.value,
                timestamp=st.timestamp.isoformat(),
            )
            for st in s.steps
        ],
        errors=list(s.errors),
        warnings=[w.model_dump() for w in s.warnings],
        started_at=s.started_at.isoformat() if s.started_at else None,
        finished_at=s.finished_at.isoformat() if s.finished_at else None,
        result=s.result.model_dump(mode="json") if s.result else None,
        partial_result=s.partial_result,
    )


def _coordinator(request: Request) -> SyncCoordinator:
    return request.app.state.sync_coordinator


def _background_tasks(request: Request) -> set:
    tasks = getattr(request.app.state, "sync_tasks", None)
    if tasks is None:
        tasks = set()
        request.app.state.sync_tasks = tasks
    return tasks


def _sync_target(
    patient_id: str,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
) -> tuple[PatientRecord, Optional[float]]:
    """Load the patient in the threadpool so the async route never touches the DB."""
    patient = load_patient(db, patient_id, identity)
    return patient_to_record(patient), last_synced_epoch(patient)


@router.post("/patients/{patient_id}/sync", response_model=SyncSessionResponse)
async def sync_patient(
    patient_id: str,
    request: Request,
    req: SyncRequest = SyncRequest(),
    target: tuple[PatientRecord, Optional[float]] = Depends(_sync_target),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """
    Run an EMR sync for a patient.

    With ``wait=true`` (default) the response is the finished session.
    Otherwise the sync continues in the background and the in-flight
    session is returned for polling.
    """
    record, last_synced = target
    coordinator = _coordinator(request)

    run = coordinator.run_sync(
        record,
        force_sync=req.force_sync,
        last_synced_at=last_synced,
        role=identity_role(identity),
    )
    if req.wait:
        return session_response(await run)

    task = asyncio.create_task(run)
    tasks = _background_tasks(request)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    await asyncio.sleep(0)

    session = coordinator.in_flight(patient_id)
    if session is None:
        sessions = coordinator.list_sessions(patient_id)
        if not sessions:
            raise HTTPException(status_code=500, detail="Sync did not start")
        session = sessions[-1]
    return session_response(session)


@router.get("/sync-sessions/{session_id}", response_model=SyncSessionResponse)
def get_sync_session(
    session_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    try:
        session = _coordinator(request).get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Sync session not found")
    load_patient(db, session.patient_id, identity)
    return session_response(session)


@router.get("/patients/{patient_id}/sync-sessions", response_model=list[SyncSessionResponse])
def list_sync_sessions(
    patient_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    """Sessions still held in memory for a patient, newest first."""
    load_patient(db, patient_id, identity)
    sessions = _coordinator(request).list_sessions(patient_id)
    return [session_response(s) for s in reversed(sessions)]


@router.post("/sync-sessions/{session_id}/cancel", response_model=SyncSessionResponse)
def cancel_sync_session(
    session_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: RequestIdentity | None = Depends(get_request_identity),
):
    coordinator = _coordinator(request)
    try:
        session = coordinator.get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Sync session not found")
    load_patient(db, session.patient_id, identity)
    try:
        session = coordinator.cancel_session(session_id)
    except InvalidTransition:
        raise HTTPException(status_code=409, detail="Sync session is not in flight")
    return session_response(session)
