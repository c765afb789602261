"""
Step Module

Architectural Intent:
- A Step is a named, immutable unit of work in an installation workflow
- Handlers are opaque: the orchestrator only observes success or an exception
- Handlers may be plain callables (run in a worker thread) or coroutines
- Optional compensating action is used by atomic rollback

Domain Rules:
- Step names are unique within a workflow
- ``dependencies`` is the declared set; filtering never mutates it, so the
  fingerprint stays stable across --steps-only / --skip-steps runs
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from keystone.domain.errors import StepCancelledError

StepHandler = Union[
    Callable[[], Any],
    Callable[["StepContext"], Any],
    Callable[["StepContext"], Awaitable[Any]],
]


@dataclass(frozen=True)
class Step:
    """A registered workflow step.

    Attributes:
        name: Unique identifier, also the key in persisted state.
        description: Human-readable label used by reporters.
        handler: Work to perform. Receives a StepContext if it accepts one.
        dependencies: Names of steps that must complete first.
        required: A failing required step aborts the run (unless
                  continue-on-error is set outside atomic mode).
        compensate: Undo action invoked during atomic rollback.
        config: Configuration values this step depends on; part of the
                fingerprint used to validate resumed state.
        timeout: Seconds the handler is expected to honour. Not enforced.
    """

    name: str
    description: str
    handler: StepHandler
    dependencies: frozenset[str] = frozenset()
    required: bool = True
    compensate: Optional[StepHandler] = None
    config: Mapping[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Step name cannot be empty")
        if not isinstance(self.dependencies, frozenset):
            object.__setattr__(self, "dependencies", frozenset(self.dependencies))


@dataclass(frozen=True)
class StepContext:
    """What a handler gets to see about the run it belongs to."""

    step_name: str
    config: Any = None
    options: Any = None
    timeout: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self.options, "dry_run", False))

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise StepCancelledError(f"Step '{self.step_name}' cancelled: deadline exceeded")
