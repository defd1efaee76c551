"""
Unit tests for the sync-session reducer.
"""
import pytest

from packages.shared.errors import InvalidTransition
from packages.shared.models import SyncPhase, SyncResult, SyncStep, Warning
from apps.worker.sync.state import (
    STEP_HISTORY_LIMIT,
    RetryScheduled,
    StepRecorded,
    SyncApplied,
    SyncCompleted,
    SyncFailed,
    SyncStarted,
    WarningRaised,
    new_session,
    reduce,
)


def _step(name: str, progress: int, phase: SyncPhase) -> StepRecorded:
    return StepRecorded(step=SyncStep(step=name, progress=progress, message=name, phase=phase))


def _started():
    return reduce(new_session("p1"), SyncStarted())


class TestReducer:
    def test_start_from_idle(self):
        s = _started()
        assert s.status == SyncPhase.INITIALIZING
        assert s.progress == 0
        assert s.started_at is not None

    def test_step_advances_phase_and_progress(self):
        s = reduce(_started(), _step("health_check", 12, SyncPhase.AUTHENTICATING))
        assert s.status == SyncPhase.AUTHENTICATING
        assert s.progress == 12
        assert s.last_step.step == "health_check"

    def test_rejects_backward_phase(self):
        s = reduce(_started(), _step("multi_system_sync", 25, SyncPhase.PROCESSING))
        with pytest.raises(InvalidTransition):
            reduce(s, _step("preflight", 30, SyncPhase.CONNECTING))

    def test_rejects_progress_decrease(self):
        s = reduce(_started(), _step("multi_system_sync", 25, SyncPhase.PROCESSING))
        with pytest.raises(InvalidTransition):
            reduce(s, _step("summary_retrieval", 20, SyncPhase.ANALYZING))

    def test_synchronizing_and_validating_are_siblings(self):
        s = reduce(_started(), _step("clinical_documentation", 78, SyncPhase.SYNCHRONIZING))
        s = reduce(s, _step("final_validation", 84, SyncPhase.VALIDATING))
        assert s.status == SyncPhase.VALIDATING

    def test_step_history_is_a_ring_buffer(self):
        s = _started()
        for i in range(8):
            s = reduce(s, _step(f"s{i}", i * 5, SyncPhase.PROCESSING))
        assert len(s.steps) == STEP_HISTORY_LIMIT
        assert [st.step for st in s.steps] == ["s3", "s4", "s5", "s6", "s7"]

    def test_warning_appends(self):
        s = reduce(_started(), WarningRaised(warning=Warning(code="W", message="w")))
        assert [w.code for w in s.warnings] == ["W"]

    def test_completed_then_applied(self):
        s = reduce(_started(), _step("finalization", 96, SyncPhase.FINALIZING))
        s = reduce(s, SyncCompleted(result=SyncResult(patient_id="p1")))
        assert s.status == SyncPhase.COMPLETED
        assert s.progress == 98
        s = reduce(s, SyncApplied())
        assert s.status == SyncPhase.APPLIED
        assert s.progress == 100
        assert s.finished_at is not None
        assert s.is_terminal

    def test_applied_requires_completed(self):
        with pytest.raises(InvalidTransition):
            reduce(_started(), SyncApplied())

    def test_failed_is_terminal(self):
        s = reduce(_started(), SyncFailed(error="boom", partial_result={"a": 1}))
        assert s.status == SyncPhase.ERROR
        assert s.errors == ("boom",)
        assert s.partial_result == {"a": 1}
        with pytest.raises(InvalidTransition):
            reduce(s, _step("x", 50, SyncPhase.PROCESSING))

    def test_restart_after_error_clears_state(self):
        s = reduce(_started(), SyncFailed(error="boom"))
        s = reduce(s, SyncStarted(force=True))
        assert s.status == SyncPhase.INITIALIZING
        assert s.errors == ()
        assert s.force is True

    def test_cannot_start_while_in_flight(self):
        s = reduce(_started(), _step("x", 25, SyncPhase.PROCESSING))
        with pytest.raises(InvalidTransition):
            reduce(s, SyncStarted())

    def test_retry_resets_progress_and_counts(self):
        s = reduce(_started(), _step("medication_sync", 60, SyncPhase.SYNCHRONIZING))
        s = reduce(s, RetryScheduled(error="network timeout"))
        assert s.status == SyncPhase.INITIALIZING
        assert s.progress == 0
        assert s.retry_count == 1
        assert s.errors == ("network timeout",)

    def test_retry_budget_is_enforced(self):
        s = _started()
        for _ in range(3):
            s = reduce(s, RetryScheduled(error="timeout", max_retries=3))
        with pytest.raises(InvalidTransition):
            reduce(s, RetryScheduled(error="timeout", max_retries=3))

    def test_events_before_start_are_rejected(self):
        with pytest.raises(InvalidTransition):
            reduce(new_session("p1"), _step("x", 1, SyncPhase.INITIALIZING))
