"""
Domain Errors

Architectural Intent:
- Single exception taxonomy for the orchestration engine
- Graph and state errors are fatal and raised before any handler runs
- Step, rollback and sync errors carry enough context for reporting
"""

from __future__ import annotations
from typing import Any, Sequence


class KeystoneError(Exception):
    pass


class GraphValidationError(KeystoneError):
    pass


class DuplicateStepError(GraphValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Step registered more than once: {name}")
        self.name = name


class UnknownDependencyError(GraphValidationError):
    def __init__(self, step_name: str, missing: Sequence[str]) -> None:
        super().__init__(
            f"Step '{step_name}' depends on unknown step(s): {', '.join(missing)}"
        )
        self.step_name = step_name
        self.missing = tuple(missing)


class DependencyCycleError(GraphValidationError):
    def __init__(self, cycle: Sequence[str]) -> None:
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")
        self.cycle = tuple(cycle)


class StateFingerprintMismatchError(KeystoneError):
    """Persisted state was produced by a different configuration."""

    def __init__(self, step_name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Recorded state for '{step_name}' does not match the current "
            f"configuration (stored {expected[:12]}, current {actual[:12]}); "
            f"clear the state or rerun without --resume"
        )
        self.step_name = step_name
        self.expected = expected
        self.actual = actual


class StepExecutionError(KeystoneError):
    def __init__(self, step_name: str, cause: BaseException) -> None:
        super().__init__(f"Step '{step_name}' failed: {cause}")
        self.step_name = step_name
        self.cause = cause


class StepCancelledError(KeystoneError):
    pass


class RollbackError(KeystoneError):
    def __init__(self, step_name: str, cause: BaseException) -> None:
        super().__init__(f"Rollback of step '{step_name}' failed: {cause}")
        self.step_name = step_name
        self.cause = cause


class AggregateSyncError(KeystoneError):
    """One or more synchronizer tasks failed. ``outcomes`` holds every failure."""

    def __init__(self, outcomes: Sequence[Any]) -> None:
        lines = [f"  [{o.index}] {o.error}" for o in outcomes]
        super().__init__(
            f"{len(outcomes)} task(s) failed:\n" + "\n".join(lines)
        )
        self.outcomes = tuple(outcomes)


class CommandError(KeystoneError):
    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Command '{command}' exited with {exit_code}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
