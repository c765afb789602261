"""
Step Events

Architectural Intent:
- Progress stream emitted by the scheduler (aggregate_id is the run id)
- Keeps presentation concerns out of the scheduler
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from keystone.domain.events.event_base import DomainEvent


@dataclass(frozen=True)
class StepStarted(DomainEvent):
    step_name: str = ""
    description: str = ""


@dataclass(frozen=True)
class StepCompleted(DomainEvent):
    step_name: str = ""
    duration: float = 0.0
    resumed: bool = False


@dataclass(frozen=True)
class StepFailed(DomainEvent):
    step_name: str = ""
    error: str = ""
    required: bool = True
    duration: float = 0.0


@dataclass(frozen=True)
class StepSkipped(DomainEvent):
    step_name: str = ""
    reason: str = ""


@dataclass(frozen=True)
class RollbackFinished(DomainEvent):
    rolled_back: tuple[str, ...] = ()
    failures: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class RunFinished(DomainEvent):
    success: bool = True
    summary: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
