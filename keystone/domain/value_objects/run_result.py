"""
Run Result

Architectural Intent:
- Aggregate outcome of one orchestrated run, consumed by reporters only
- Counters are derived from the per-step records so they cannot drift
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Optional

from keystone.domain.entities.install_state import StepStatus


@dataclass(frozen=True)
class CompletedStep:
    name: str
    description: str
    status: StepStatus
    duration: float = 0.0
    error: Optional[str] = None
    required: bool = True
    resumed: bool = False

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    @property
    def skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "duration": round(self.duration, 3),
            "failed": self.failed,
            "skipped": self.skipped,
            "resumed": self.resumed,
            "required": self.required,
            "error": self.error,
        }


@dataclass
class RunResult:
    """Per-step records in plan order plus rollback outcome.

    Steps satisfied by resumed state count as completed (flagged
    ``resumed``), so a resumed run of a finished workflow reports the
    same counters as the run that finished it.
    """

    run_id: str
    steps: list[CompletedStep] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None
    aborted: bool = False
    abort_reason: Optional[str] = None
    rolled_back: list[str] = field(default_factory=list)
    rollback_errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    resumed: bool = False

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def completed(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)

    @property
    def skipped(self) -> int:
        return sum(1 for s in self.steps if s.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for s in self.steps if s.failed)

    @property
    def resumed_steps(self) -> int:
        return sum(1 for s in self.steps if s.resumed)

    @property
    def success_rate(self) -> float:
        if not self.steps:
            return 0.0
        return self.completed / self.total * 100

    @property
    def required_failures(self) -> list[CompletedStep]:
        return [s for s in self.steps if s.failed and s.required]

    @property
    def success(self) -> bool:
        return not self.aborted and not self.required_failures

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": "completed" if self.success else "failed",
            "total_steps": self.total,
            "completed_steps": self.completed,
            "skipped_steps": self.skipped,
            "failed_steps": self.failed,
            "resumed_steps": self.resumed_steps,
            "success_rate": round(self.success_rate, 1),
            "start_time": self.started_at.isoformat(),
            "end_time": self.finished_at.isoformat() if self.finished_at else None,
            "duration": round(self.duration, 3),
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "rolled_back": list(self.rolled_back),
            "rollback_errors": list(self.rollback_errors),
            "dry_run": self.dry_run,
            "resumed": self.resumed,
            "steps": [s.to_dict() for s in self.steps],
        }
