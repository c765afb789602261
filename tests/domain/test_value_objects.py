"""Tests for Fingerprint, ExecutionPlan helpers, RunResult counters and Step."""

import threading

import pytest

from keystone.domain.entities.install_state import StepStatus
from keystone.domain.entities.step import Step, StepContext
from keystone.domain.errors import StepCancelledError
from keystone.domain.value_objects.fingerprint import Fingerprint
from keystone.domain.value_objects.run_result import CompletedStep, RunResult


def _noop():
    return None


class TestFingerprint:
    def test_stable_for_equal_steps(self):
        a = Step("deploy", "Deploy", _noop, {"b", "a"}, config={"x": 1, "y": [1, 2]})
        b = Step("deploy", "Other text", lambda: 1, {"a", "b"}, config={"y": [1, 2], "x": 1})
        assert Fingerprint.of(a) == Fingerprint.of(b)

    def test_changes_with_config(self):
        a = Step("deploy", "Deploy", _noop, config={"namespace": "prod"})
        b = Step("deploy", "Deploy", _noop, config={"namespace": "staging"})
        assert Fingerprint.of(a) != Fingerprint.of(b)

    def test_changes_with_dependencies(self):
        a = Step("deploy", "Deploy", _noop, {"setup"})
        b = Step("deploy", "Deploy", _noop, {"setup", "package-pull"})
        assert Fingerprint.of(a) != Fingerprint.of(b)

    def test_is_sha256_hex(self):
        value = str(Fingerprint.of(Step("setup", "Setup", _noop)))
        assert len(value) == 64
        int(value, 16)

    def test_invalid_value_rejected(self):
        with pytest.raises(ValueError):
            Fingerprint("abc")


class TestStep:
    def test_dependencies_coerced_to_frozenset(self):
        step = Step("b", "B", _noop, ["a"])
        assert step.dependencies == frozenset({"a"})

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            Step("", "nothing", _noop)

    def test_context_cancellation(self):
        event = threading.Event()
        ctx = StepContext("deploy", cancel_event=event)
        assert not ctx.cancelled
        ctx.raise_if_cancelled()
        event.set()
        assert ctx.cancelled
        with pytest.raises(StepCancelledError):
            ctx.raise_if_cancelled()

    def test_context_dry_run_reads_options(self):
        class Options:
            dry_run = True

        assert StepContext("x", options=Options()).dry_run
        assert not StepContext("x").dry_run


class TestRunResult:
    def _result(self):
        return RunResult(
            run_id="install",
            steps=[
                CompletedStep("setup", "Setup", StepStatus.COMPLETED, 1.0, resumed=True),
                CompletedStep("deploy", "Deploy", StepStatus.COMPLETED, 2.0),
                CompletedStep("db-migrate", "DB", StepStatus.FAILED, 0.5, "boom", required=False),
                CompletedStep("e2e-test", "E2E", StepStatus.SKIPPED, error="blocked"),
            ],
        )

    def test_counters(self):
        result = self._result()
        assert result.total == 4
        assert result.completed == 2
        assert result.failed == 1
        assert result.skipped == 1
        assert result.resumed_steps == 1
        assert result.success_rate == 50.0

    def test_optional_failure_does_not_fail_run(self):
        assert self._result().success

    def test_required_failure_fails_run(self):
        result = self._result()
        result.steps.append(CompletedStep("post", "Post", StepStatus.FAILED, error="x"))
        assert not result.success
        assert [s.name for s in result.required_failures] == ["post"]

    def test_abort_fails_run(self):
        result = self._result()
        result.aborted = True
        assert not result.success

    def test_empty_success_rate(self):
        assert RunResult(run_id="x").success_rate == 0.0

    def test_to_dict(self):
        data = self._result().to_dict()
        assert data["total_steps"] == 4
        assert data["status"] == "completed"
        assert data["steps"][2]["failed"] is True
        assert data["steps"][3]["skipped"] is True
