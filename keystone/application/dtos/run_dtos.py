"""
Run DTOs

Architectural Intent:
- Immutable per-run options built once from config plus CLI flags
- Passed explicitly to the scheduler and into every StepContext
- Input validation at the application boundary
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RunOptions:
    run_id: str = "install"
    resume: bool = False
    force: bool = False
    parallel: bool = False
    max_workers: int = 5
    continue_on_error: bool = False
    dry_run: bool = False
    atomic: bool = False
    skip_steps: tuple[str, ...] = ()
    steps_only: tuple[str, ...] = ()
    deadline_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.run_id:
            raise ValueError("run_id cannot be empty")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.skip_steps and self.steps_only:
            raise ValueError("skip_steps and steps_only are mutually exclusive")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")

