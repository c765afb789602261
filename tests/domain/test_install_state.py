"""Tests for step state transitions and the persisted state shape."""

import pytest

from keystone.domain.entities.install_state import (
    InstallState,
    RunStatus,
    StepState,
    StepStatus,
)


class TestStepStateTransitions:
    def test_happy_path(self):
        state = StepState("setup").start().complete()
        assert state.status == StepStatus.COMPLETED
        assert state.start_time is not None
        assert state.end_time >= state.start_time
        assert state.retries == 0

    def test_fail_records_error(self):
        state = StepState("deploy").start().fail("helm exploded")
        assert state.status == StepStatus.FAILED
        assert state.error == "helm exploded"

    def test_restart_after_failure_counts_retry(self):
        state = StepState("deploy").start().fail("boom").start()
        assert state.status == StepStatus.RUNNING
        assert state.retries == 1
        assert state.error is None

    def test_complete_requires_running(self):
        with pytest.raises(ValueError):
            StepState("setup").complete()

    def test_fail_requires_running(self):
        with pytest.raises(ValueError):
            StepState("setup").fail("nope")

    def test_running_step_cannot_be_skipped(self):
        with pytest.raises(ValueError):
            StepState("setup").start().skip("why")

    def test_skip_keeps_reason(self):
        state = StepState("e2e-test").skip("dependency 'deploy' did not complete")
        assert state.status == StepStatus.SKIPPED
        assert "deploy" in state.error

    def test_reset_returns_to_pending(self):
        state = StepState("deploy").start().complete().reset()
        assert state.status == StepStatus.PENDING

    def test_transitions_return_new_instances(self):
        original = StepState("setup")
        started = original.start()
        assert original.status == StepStatus.PENDING
        assert started is not original


class TestInstallStateSerialization:
    def test_round_trip(self):
        state = InstallState(run_id="install", resume=True)
        state.record(StepState("setup", fingerprint="f" * 64).start().complete())
        state.record(StepState("deploy").start().fail("boom"))
        state.record(StepState("e2e-test").skip("blocked"))
        state.finish(success=False, error="required step 'deploy' failed")

        restored = InstallState.from_dict(state.to_dict())

        assert restored == state
        assert list(restored.steps) == ["setup", "deploy", "e2e-test"]

    def test_camel_case_keys(self):
        data = InstallState(run_id="install").to_dict()
        assert set(data) == {
            "runId", "status", "startTime", "endTime", "lastError", "resume", "steps",
        }
        state = InstallState(run_id="install")
        state.record(StepState("setup"))
        step = state.to_dict()["steps"][0]
        assert set(step) == {
            "name", "status", "startTime", "endTime", "error", "retries", "fingerprint",
        }

    def test_fresh_state_is_running(self):
        assert InstallState(run_id="install").status == RunStatus.RUNNING

    def test_finish(self):
        state = InstallState(run_id="install")
        state.finish(success=True)
        assert state.status == RunStatus.COMPLETED
        assert state.end_time is not None

    def test_is_completed(self):
        state = InstallState(run_id="install")
        state.record(StepState("setup").start().complete())
        state.record(StepState("deploy"))
        assert state.is_completed("setup")
        assert not state.is_completed("deploy")
        assert not state.is_completed("unknown")
