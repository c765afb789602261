"""
Domain Events Package

Architectural Intent:
- Contains domain events emitted during orchestration
- Events are the only channel between the scheduler and reporters
"""

from keystone.domain.events.event_base import DomainEvent
from keystone.domain.events.step_events import (
    StepStarted,
    StepCompleted,
    StepFailed,
    StepSkipped,
    RollbackFinished,
    RunFinished,
)

__all__ = [
    "DomainEvent",
    "StepStarted",
    "StepCompleted",
    "StepFailed",
    "StepSkipped",
    "RollbackFinished",
    "RunFinished",
]
