"""
Reporting

Architectural Intent:
- Turns the scheduler's event stream and RunResult into console output
- Writes the JSON installation report
- Pure formatting: nothing here influences execution
"""

from __future__ import annotations
import json
import sys
from pathlib import Path
from typing import TextIO

from keystone.domain.entities.install_state import InstallState, StepStatus
from keystone.domain.events.step_events import (
    RollbackFinished,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
)
from keystone.domain.value_objects.execution_plan import ExecutionPlan
from keystone.domain.value_objects.run_result import RunResult

STATUS_MARKERS = {
    StepStatus.PENDING: "[ ]",
    StepStatus.RUNNING: "[*]",
    StepStatus.COMPLETED: "[+]",
    StepStatus.FAILED: "[-]",
    StepStatus.SKIPPED: "[~]",
}


class ProgressPrinter:
    """Event-bus subscriber printing one line per step transition."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stdout

    def attach(self, event_bus) -> "ProgressPrinter":
        event_bus.subscribe(StepStarted, self.on_started)
        event_bus.subscribe(StepCompleted, self.on_completed)
        event_bus.subscribe(StepFailed, self.on_failed)
        event_bus.subscribe(StepSkipped, self.on_skipped)
        event_bus.subscribe(RollbackFinished, self.on_rollback)
        return self

    def _print(self, event, line: str) -> None:
        prefix = f"({event.aggregate_id}) " if event.aggregate_id not in ("", "install") else ""
        print(f"{prefix}{line}", file=self.stream, flush=True)

    async def on_started(self, event: StepStarted) -> None:
        self._print(event, f"[*] {event.step_name}: {event.description}...")

    async def on_completed(self, event: StepCompleted) -> None:
        if event.resumed:
            self._print(event, f"[=] {event.step_name}: already completed")
        else:
            self._print(event, f"[+] {event.step_name}: done ({event.duration:.1f}s)")

    async def on_failed(self, event: StepFailed) -> None:
        kind = "required" if event.required else "optional"
        self._print(event, f"[-] {event.step_name} ({kind}) failed: {event.error}")

    async def on_skipped(self, event: StepSkipped) -> None:
        self._print(event, f"[~] {event.step_name}: skipped ({event.reason})")

    async def on_rollback(self, event: RollbackFinished) -> None:
        rolled = ", ".join(event.rolled_back) or "nothing"
        self._print(event, f"[!] Rolled back: {rolled}")
        for failure in event.failures:
            self._print(event, f"[-] {failure}")


def render_summary(result: RunResult) -> str:
    lines = [
        "",
        f"Run '{result.run_id}'{' (dry run)' if result.dry_run else ''}: "
        + ("SUCCESS" if result.success else "FAILED"),
        f"  Total: {result.total}  Completed: {result.completed}  "
        f"Skipped: {result.skipped}  Failed: {result.failed}  "
        f"Success rate: {result.success_rate:.1f}%",
        f"  Duration: {result.duration:.1f}s",
    ]
    if result.resumed_steps:
        lines.append(f"  Resumed from saved state: {result.resumed_steps} step(s)")
    for step in result.steps:
        if step.failed:
            lines.append(f"  [-] {step.name}: {step.error}")
    if result.abort_reason:
        lines.append(f"  Aborted: {result.abort_reason}")
    if result.rolled_back or result.rollback_errors:
        lines.append(f"  Rolled back: {', '.join(result.rolled_back) or 'nothing'}")
        for error in result.rollback_errors:
            lines.append(f"  [-] {error}")
    return "\n".join(lines)


def render_plan(plan: ExecutionPlan) -> str:
    lines = [f"Execution plan: {len(plan)} step(s) in {len(plan.levels)} level(s)"]
    for index, level in enumerate(plan.levels):
        lines.append(f"  Level {index}:")
        for step in level:
            flag = "" if step.required else " (optional)"
            deps = ", ".join(sorted(step.dependencies)) or "-"
            lines.append(f"    {step.name}{flag}  <- {deps}")
    return "\n".join(lines)


def render_state(state: InstallState) -> str:
    lines = [
        f"Run '{state.run_id}': {state.status.value}"
        f"{' (resumed)' if state.resume else ''}",
        f"  Started: {state.start_time.isoformat()}",
    ]
    if state.end_time:
        lines.append(f"  Finished: {state.end_time.isoformat()}")
    if state.last_error:
        lines.append(f"  Last error: {state.last_error}")
    for step in state.steps.values():
        line = f"  {STATUS_MARKERS[step.status]} {step.name:<22} {step.status.value}"
        if step.retries:
            line += f"  retries={step.retries}"
        if step.error:
            line += f"  ({step.error})"
        lines.append(line)
    return "\n".join(lines)


def write_report(result: RunResult, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    return path
