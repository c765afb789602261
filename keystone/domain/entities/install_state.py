"""
Install State Module

Architectural Intent:
- InstallState is the persisted aggregate behind resume-from-failure
- StepState transitions are enforced by domain methods returning new instances
- Serialization lives next to the model so the state file round-trips exactly

Persisted Shape (camelCase keys):
    {"runId", "status", "startTime", "endTime", "lastError", "resume",
     "steps": [{"name", "status", "startTime", "endTime", "error",
                "retries", "fingerprint"}]}
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Optional


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(UTC)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class StepState:
    name: str
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    retries: int = 0
    fingerprint: str = ""

    def start(self) -> "StepState":
        if self.status == StepStatus.PENDING:
            retries = self.retries
        else:
            retries = self.retries + 1
        return replace(
            self,
            status=StepStatus.RUNNING,
            start_time=_now(),
            end_time=None,
            error=None,
            retries=retries,
        )

    def complete(self) -> "StepState":
        if self.status != StepStatus.RUNNING:
            raise ValueError(f"Step '{self.name}' must be RUNNING to complete")
        return replace(self, status=StepStatus.COMPLETED, end_time=_now())

    def fail(self, error: str) -> "StepState":
        if self.status != StepStatus.RUNNING:
            raise ValueError(f"Step '{self.name}' must be RUNNING to fail")
        return replace(self, status=StepStatus.FAILED, end_time=_now(), error=error)

    def skip(self, reason: str) -> "StepState":
        if self.status == StepStatus.RUNNING:
            raise ValueError(f"Step '{self.name}' is RUNNING and cannot be skipped")
        return replace(self, status=StepStatus.SKIPPED, error=reason)

    def reset(self) -> "StepState":
        """Back to PENDING after its effects were rolled back."""
        return replace(self, status=StepStatus.PENDING, end_time=_now(), error=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "startTime": _ts(self.start_time),
            "endTime": _ts(self.end_time),
            "error": self.error,
            "retries": self.retries,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepState":
        return cls(
            name=data["name"],
            status=StepStatus(data.get("status", "pending")),
            start_time=_parse_ts(data.get("startTime")),
            end_time=_parse_ts(data.get("endTime")),
            error=data.get("error"),
            retries=int(data.get("retries", 0)),
            fingerprint=data.get("fingerprint", ""),
        )


@dataclass
class InstallState:
    """Per-run state. Step order follows the order steps were first recorded."""

    run_id: str
    steps: dict[str, StepState] = field(default_factory=dict)
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    last_error: Optional[str] = None
    resume: bool = False

    def get(self, name: str) -> Optional[StepState]:
        return self.steps.get(name)

    def record(self, step_state: StepState) -> None:
        self.steps[step_state.name] = step_state

    def is_completed(self, name: str) -> bool:
        step = self.steps.get(name)
        return step is not None and step.status == StepStatus.COMPLETED

    def finish(self, success: bool, error: Optional[str] = None) -> None:
        self.status = RunStatus.COMPLETED if success else RunStatus.FAILED
        self.end_time = _now()
        self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "status": self.status.value,
            "startTime": _ts(self.start_time),
            "endTime": _ts(self.end_time),
            "lastError": self.last_error,
            "resume": self.resume,
            "steps": [s.to_dict() for s in self.steps.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallState":
        steps = [StepState.from_dict(s) for s in data.get("steps", [])]
        return cls(
            run_id=data.get("runId", ""),
            steps={s.name: s for s in steps},
            start_time=_parse_ts(data.get("startTime")) or _now(),
            end_time=_parse_ts(data.get("endTime")),
            status=RunStatus(data.get("status", "running")),
            last_error=data.get("lastError"),
            resume=bool(data.get("resume", False)),
        )
