"""
Sync coordinator: session registry, retry/backoff, freshness and
one-in-flight-per-patient policy around ``run_sync_attempt``.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from packages.shared.errors import (
    InvalidTransition,
    PatientValidationError,
    SyncCancelled,
    SyncFailure,
    error_text,
)
from packages.shared.models import PatientRecord, SyncConfig, SyncResult, SyncSession

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.pipeline import SyncContext, SyncServices, run_sync_attempt
from apps.worker.services.audit import AuditService
from apps.worker.services.cache import CacheService
from apps.worker.services.security import SecurityService
from apps.worker.sync import events as sync_events
from apps.worker.sync.cancellation import CancellationToken
from apps.worker.sync.events import EventBus
from apps.worker.sync.retry import format_failure, keeps_partial_result, retry_delay, should_retry
from apps.worker.sync.state import (
    RetryScheduled,
    SyncApplied,
    SyncCompleted,
    SyncFailed,
    SyncStarted,
    new_session,
    reduce,
)

logger = logging.getLogger(__name__)

SUPERSEDED = "Sync superseded"
CANCELLED = "Sync cancelled"

SuccessHook = Callable[[str, datetime], None]


class SessionNotFound(KeyError):
    pass


class _InFlight:
    def __init__(self, session_id: str, token: CancellationToken, done: asyncio.Future):
        self.session_id = session_id
        self.token = token
        self.done = done


class SyncCoordinator:
    """
    Owns every sync session of the process.

    ``clock`` returns epoch seconds and ``sleep`` is awaited between retries;
    both are injectable so tests never wait on real time.
    """

    def __init__(
        self,
        client: HealthcareIntegrationClient,
        *,
        config: SyncConfig | None = None,
        cache: CacheService | None = None,
        audit: AuditService | None = None,
        security: SecurityService | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_success: SuccessHook | None = None,
        max_sessions: int = 500,
    ):
        self.config = config or SyncConfig()
        self.cache = cache or CacheService(default_ttl=self.config.cache_ttl_seconds, clock=clock)
        self.bus = bus or EventBus()
        self.services = SyncServices(
            client=client,
            cache=self.cache,
            audit=audit or AuditService(),
            security=security or SecurityService(),
            config=self.config,
        )
        self._clock = clock
        self._sleep = sleep
        self._on_success = on_success
        self._max_sessions = max_sessions
        self._sessions: dict[str, SyncSession] = {}
        self._inflight: dict[str, _InFlight] = {}
        self._last_success: dict[str, float] = {}

    # ── Registry ──────────────────────────────────────────────────────
    def get_session(self, session_id: str) -> SyncSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def list_sessions(self, patient_id: str) -> list[SyncSession]:
        return [s for s in self._sessions.values() if s.patient_id == patient_id]

    def in_flight(self, patient_id: str) -> Optional[SyncSession]:
        entry = self._inflight.get(patient_id)
        return self._sessions.get(entry.session_id) if entry else None

    def _store(self, session: SyncSession) -> None:
        self._sessions[session.id] = session
        if len(self._sessions) > self._max_sessions:
            for sid in list(self._sessions):
                if len(self._sessions) <= self._max_sessions:
                    break
                if self._sessions[sid].is_terminal:
                    del self._sessions[sid]

    def _on_progress(self, session: SyncSession) -> None:
        self._store(session)
        if self.config.realtime_events and session.last_step is not None:
            step = session.last_step
            self.bus.publish(sync_events.SYNC_PROGRESS, {
                "session_id": session.id,
                "patient_id": session.patient_id,
                "status": session.status.value,
                "progress": session.progress,
                "step": step.step,
                "message": step.message,
            })

    # ── Freshness ─────────────────────────────────────────────────────
    def mark_synced(self, patient_id: str, at: float) -> None:
        self._last_success[patient_id] = max(at, self._last_success.get(patient_id, 0.0))

    def last_success(self, patient_id: str, persisted: Optional[float] = None) -> Optional[float]:
        known = [t for t in (self._last_success.get(patient_id), persisted) if t is not None]
        return max(known) if known else None

    def is_fresh(self, patient_id: str, persisted: Optional[float] = None) -> bool:
        last = self.last_success(patient_id, persisted)
        return last is not None and (self._clock() - last) < self.config.freshness_seconds

    # ── Public operations ─────────────────────────────────────────────
    async def run_sync(
        self,
        patient: PatientRecord,
        force_sync: bool = False,
        *,
        last_synced_at: Optional[float] = None,
        role: str = "system",
    ) -> SyncSession:
        """
        Run (or join) a sync for *patient* and return the final session.

        A non-forced call joins an in-flight sync for the same patient; a
        forced call supersedes it.
        """
        # Re-checked after every wait: another forced trigger may have
        # registered while this one waited on the superseded session.
        while (current := self._inflight.get(patient.id)) is not None:
            if not force_sync:
                logger.info(f"[{current.session_id}] Joining in-flight sync for patient {patient.id}")
                return await asyncio.shield(current.done)
            logger.info(f"[{current.session_id}] Superseded by forced sync for patient {patient.id}")
            current.token.cancel(SUPERSEDED)
            await asyncio.shield(current.done)

        fresh = not force_sync and self.is_fresh(patient.id, last_synced_at)
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()
        session = reduce(new_session(patient.id, force=force_sync),
                         SyncStarted(force=force_sync, at=self._now()))
        self._store(session)
        entry = _InFlight(session.id, token, done)
        self._inflight[patient.id] = entry

        try:
            session = await self._run_attempts(session, patient, token, fresh=fresh, role=role)
        finally:
            if self._inflight.get(patient.id) is entry:
                del self._inflight[patient.id]
            final = self._sessions.get(entry.session_id, session)
            if not done.done():
                done.set_result(final)
        return session

    async def auto_sync(
        self,
        patient: PatientRecord,
        *,
        last_synced_at: Optional[float] = None,
    ) -> Optional[SyncSession]:
        """Timer-driven sync: does nothing (returns None) while the last success is fresh."""
        if self.is_fresh(patient.id, last_synced_at):
            logger.debug(f"Auto-sync skipped for patient {patient.id}: last sync is fresh")
            return None
        return await self.run_sync(patient, force_sync=False, last_synced_at=last_synced_at)

    def cancel_session(self, session_id: str) -> SyncSession:
        session = self.get_session(session_id)
        entry = self._inflight.get(session.patient_id)
        if entry is None or entry.session_id != session_id:
            raise InvalidTransition(session.status.value, "error", kind="sync session (cancel)")
        entry.token.cancel(CANCELLED)
        logger.info(f"[{session_id}] Cancellation requested")
        return session

    # ── Internals ─────────────────────────────────────────────────────
    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def _run_attempts(
        self,
        session: SyncSession,
        patient: PatientRecord,
        token: CancellationToken,
        *,
        fresh: bool,
        role: str,
    ) -> SyncSession:
        while True:
            ctx = SyncContext(session, token, on_change=self._on_progress)
            try:
                result = await run_sync_attempt(ctx, patient, self.services, fresh=fresh, role=role)
            except SyncCancelled as exc:
                return self._fail(ctx.session, exc.reason, partial=None)
            except PatientValidationError as exc:
                logger.error(f"[{session.id}] Validation failed: {exc}")
                return self._fail(ctx.session, self._describe(ctx.session, error_text(exc)), partial=None)
            except Exception as exc:
                session = ctx.session
                message = error_text(exc)
                if should_retry(session.progress, message, session.retry_count, self.config.max_retries):
                    delay = retry_delay(session.retry_count, self.config.retry_base_seconds, self.config.retry_cap_seconds)
                    logger.warning(
                        f"[{session.id}] Transient failure at {session.progress}%: {message}. "
                        f"Retry {session.retry_count + 1}/{self.config.max_retries} in {delay:.1f}s"
                    )
                    session = reduce(session, RetryScheduled(
                        error=message, max_retries=self.config.max_retries, at=self._now(),
                    ))
                    self._store(session)
                    try:
                        await token.sleep(delay, self._sleep)
                    except SyncCancelled as cancelled:
                        return self._fail(session, cancelled.reason, partial=None)
                    continue

                if not isinstance(exc, SyncFailure):
                    logger.exception(f"[{session.id}] Unexpected sync error: {exc}")
                partial = dict(ctx.partial) if keeps_partial_result(session.progress) else None
                return self._fail(session, self._describe(session, message), partial=partial)

            return await self._complete(ctx.session, result)

    @staticmethod
    def _describe(session: SyncSession, message: str) -> str:
        step = session.last_step.step if session.last_step else None
        return format_failure(message, step, session.progress)

    def _fail(self, session: SyncSession, message: str, *, partial: Optional[dict]) -> SyncSession:
        session = reduce(session, SyncFailed(error=message, partial_result=partial, at=self._now()))
        self._store(session)
        logger.error(f"[{session.id}] Sync failed: {message}")
        self.services.audit.record("emr_sync", session.patient_id, session_id=session.id,
                                   outcome="failure", details={"error": message})
        if self.config.realtime_events:
            self.bus.publish(sync_events.SYNC_FAILED, {
                "session_id": session.id,
                "patient_id": session.patient_id,
                "error": message,
                "retry_count": session.retry_count,
            })
        return session

    async def _complete(self, session: SyncSession, result: SyncResult) -> SyncSession:
        session = reduce(session, SyncCompleted(result=result, at=self._now()))
        self._on_progress(session)
        session = reduce(session, SyncApplied(at=self._now()))
        self._on_progress(session)
        if not (result.cache_hit or result.local_only):
            now = self._clock()
            self.mark_synced(session.patient_id, now)
            if self._on_success is not None:
                # The hook writes to the database; keep it off the event loop.
                await asyncio.to_thread(
                    self._on_success, session.patient_id, datetime.fromtimestamp(now, tz=timezone.utc),
                )
        logger.info(f"[{session.id}] Sync applied for patient {session.patient_id}")
        if self.config.realtime_events:
            self.bus.publish(sync_events.SYNC_COMPLETED, {
                "session_id": session.id,
                "patient_id": session.patient_id,
                "data_completeness": result.data_completeness,
                "compliance_score": result.compliance_score,
                "cache_hit": result.cache_hit,
            })
        return session
