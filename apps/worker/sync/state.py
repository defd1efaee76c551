"""
Sync-session state machine.

``reduce(session, event)`` is a pure function: it validates the move and
returns a new immutable ``SyncSession``. Nothing here performs I/O.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from packages.shared.errors import InvalidTransition
from packages.shared.models import SyncPhase, SyncResult, SyncSession, SyncStep, Warning

STEP_HISTORY_LIMIT = 5
MAX_RETRIES = 3

# synchronizing and validating are siblings; syncing is the in-flight alias.
PHASE_RANK: dict[SyncPhase, int] = {
    SyncPhase.IDLE: 0,
    SyncPhase.INITIALIZING: 1,
    SyncPhase.SYNCING: 1,
    SyncPhase.CONNECTING: 2,
    SyncPhase.AUTHENTICATING: 3,
    SyncPhase.GENERATING: 4,
    SyncPhase.PROCESSING: 5,
    SyncPhase.ANALYZING: 6,
    SyncPhase.INTEGRATING: 7,
    SyncPhase.SYNCHRONIZING: 8,
    SyncPhase.VALIDATING: 8,
    SyncPhase.OPTIMIZING: 9,
    SyncPhase.FINALIZING: 10,
    SyncPhase.COMPLETED: 11,
    SyncPhase.APPLIED: 12,
}

TERMINAL_PHASES = frozenset({SyncPhase.APPLIED, SyncPhase.ERROR})
RESTARTABLE_PHASES = frozenset({SyncPhase.IDLE, SyncPhase.COMPLETED, SyncPhase.APPLIED, SyncPhase.ERROR})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    at: datetime = Field(default_factory=_utcnow)


class SyncStarted(_Event):
    force: bool = False


class StepRecorded(_Event):
    step: SyncStep


class WarningRaised(_Event):
    warning: Warning


class RetryScheduled(_Event):
    error: str
    max_retries: int = MAX_RETRIES


class SyncFailed(_Event):
    error: str
    partial_result: Optional[dict[str, Any]] = None


class SyncCompleted(_Event):
    result: SyncResult
    message: str = "Sync completed"


class SyncApplied(_Event):
    message: str = "Sync results applied"


SyncEvent = Union[SyncStarted, StepRecorded, WarningRaised, RetryScheduled, SyncFailed, SyncCompleted, SyncApplied]


def new_session(patient_id: str, *, session_id: str | None = None, force: bool = False) -> SyncSession:
    return SyncSession(id=session_id or uuid.uuid4().hex, patient_id=patient_id, force=force)


def phase_rank(phase: SyncPhase) -> int:
    return PHASE_RANK[phase]


def _reject(session: SyncSession, event: _Event, target: str) -> InvalidTransition:
    return InvalidTransition(session.status.value, target, kind=f"sync session ({type(event).__name__})")


def _push_step(steps: tuple[SyncStep, ...], step: SyncStep) -> tuple[SyncStep, ...]:
    return (steps + (step,))[-STEP_HISTORY_LIMIT:]


def reduce(session: SyncSession, event: SyncEvent) -> SyncSession:
    """Apply *event* to *session* and return the next session."""
    status = session.status

    if isinstance(event, SyncStarted):
        if status not in RESTARTABLE_PHASES:
            raise _reject(session, event, SyncPhase.INITIALIZING.value)
        return session.model_copy(update={
            "status": SyncPhase.INITIALIZING,
            "progress": 0,
            "steps": (),
            "errors": (),
            "warnings": (),
            "retry_count": 0,
            "force": event.force,
            "started_at": event.at,
            "finished_at": None,
            "result": None,
            "partial_result": None,
        })

    if status in TERMINAL_PHASES or status == SyncPhase.IDLE:
        raise _reject(session, event, type(event).__name__)

    if isinstance(event, StepRecorded):
        step = event.step
        if step.phase in TERMINAL_PHASES or step.phase == SyncPhase.IDLE:
            raise _reject(session, event, step.phase.value)
        if phase_rank(step.phase) < phase_rank(status):
            raise _reject(session, event, step.phase.value)
        if step.progress < session.progress:
            raise InvalidTransition(str(session.progress), str(step.progress), kind="sync progress")
        return session.model_copy(update={
            "status": step.phase,
            "progress": step.progress,
            "steps": _push_step(session.steps, step),
        })

    if isinstance(event, WarningRaised):
        return session.model_copy(update={"warnings": session.warnings + (event.warning,)})

    if isinstance(event, RetryScheduled):
        if status == SyncPhase.COMPLETED or session.retry_count >= event.max_retries:
            raise _reject(session, event, SyncPhase.INITIALIZING.value)
        return session.model_copy(update={
            "status": SyncPhase.INITIALIZING,
            "progress": 0,
            "retry_count": session.retry_count + 1,
            "errors": session.errors + (event.error,),
        })

    if isinstance(event, SyncFailed):
        return session.model_copy(update={
            "status": SyncPhase.ERROR,
            "errors": session.errors + (event.error,),
            "finished_at": event.at,
            "partial_result": event.partial_result,
        })

    if isinstance(event, SyncCompleted):
        if status == SyncPhase.COMPLETED:
            raise _reject(session, event, SyncPhase.COMPLETED.value)
        step = SyncStep(step="completion", progress=98, message=event.message, phase=SyncPhase.COMPLETED, timestamp=event.at)
        return session.model_copy(update={
            "status": SyncPhase.COMPLETED,
            "progress": max(session.progress, 98),
            "steps": _push_step(session.steps, step),
            "result": event.result,
        })

    if isinstance(event, SyncApplied):
        if status != SyncPhase.COMPLETED:
            raise _reject(session, event, SyncPhase.APPLIED.value)
        step = SyncStep(step="applied", progress=100, message=event.message, phase=SyncPhase.APPLIED, timestamp=event.at)
        return session.model_copy(update={
            "status": SyncPhase.APPLIED,
            "progress": 100,
            "steps": _push_step(session.steps, step),
            "finished_at": event.at,
        })

    raise TypeError(f"Unsupported sync event: {type(event).__name__}")
