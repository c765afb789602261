"""
Dashboard TUI

Architectural Intent:
- Textual-based dashboard over a Keystone state file
- Read-only: it polls the file the running installer writes, so it works
  from a second terminal while an install is in progress
- Configurable refresh interval (+/- keys)
"""

from textual.app import App, ComposeResult
from textual.widgets import Header, Footer, DataTable, Log
from textual.containers import Vertical
import asyncio
import logging
from datetime import datetime
from typing import Optional

from keystone.domain.entities.install_state import InstallState, StepState, StepStatus
from keystone.infrastructure.repositories.json_state_store import (
    JsonStateStore,
    StateFileError,
)

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    StepStatus.PENDING: "dim",
    StepStatus.RUNNING: "bold yellow",
    StepStatus.COMPLETED: "green",
    StepStatus.FAILED: "bold red",
    StepStatus.SKIPPED: "cyan",
}

SEVERITY_STYLES = {
    "info": "green",
    "warning": "yellow",
    "error": "red",
}


def _duration(step: StepState) -> str:
    if not step.start_time:
        return "-"
    end = step.end_time or datetime.now(step.start_time.tzinfo)
    return f"{(end - step.start_time).total_seconds():.1f}s"


class StateDashboard(App):
    """A Textual app showing per-step installation progress."""

    CSS = """
    Screen {
        layout: vertical;
    }
    DataTable {
        height: 2fr;
        border: solid green;
    }
    Log {
        height: 1fr;
        border: solid yellow;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("+", "increase_interval", "Slower"),
        ("-", "decrease_interval", "Faster"),
    ]

    def __init__(self, state_file: str, refresh_interval: float = 2.0):
        super().__init__()
        self.store = JsonStateStore(state_file)
        self._refresh_interval = refresh_interval
        self._timer = None
        self._last_status: dict[str, StepStatus] = {}

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(DataTable(id="steps_table"), Log(id="activity_log"))
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.add_columns("Step", "Status", "Retries", "Duration", "Error")
        self.title = "Keystone"
        self.sub_title = str(self.store.path)
        self.log_message(f"Watching {self.store.path}", severity="info")
        self._timer = self.set_interval(self._refresh_interval, self._refresh_state)
        self.call_later(self._refresh_state)

    def log_message(self, message: str, severity: str = "info") -> None:
        log_widget = self.query_one(Log)
        timestamp = datetime.now().strftime("%H:%M:%S")
        line = f"[{timestamp}] [{severity.upper()}] {message}"
        style = SEVERITY_STYLES.get(severity)
        if style:
            log_widget.write_line(f"[{style}]{line}[/{style}]")
        else:
            log_widget.write_line(line)

    async def action_refresh(self) -> None:
        await self._refresh_state()

    def action_increase_interval(self) -> None:
        self._refresh_interval = min(60.0, self._refresh_interval + 1.0)
        self._restart_timer()
        self.log_message(f"Refresh interval: {self._refresh_interval}s")

    def action_decrease_interval(self) -> None:
        self._refresh_interval = max(1.0, self._refresh_interval - 1.0)
        self._restart_timer()
        self.log_message(f"Refresh interval: {self._refresh_interval}s")

    def _restart_timer(self) -> None:
        if self._timer:
            self._timer.stop()
        self._timer = self.set_interval(self._refresh_interval, self._refresh_state)

    async def _refresh_state(self) -> None:
        try:
            loop = asyncio.get_running_loop()
            state = await loop.run_in_executor(None, self.store.peek)
        except (StateFileError, OSError, KeyError, ValueError) as e:
            self.log_message(f"Cannot read state: {e}", severity="error")
            return
        self.show_state(state)

    def show_state(self, state: Optional[InstallState]) -> None:
        table = self.query_one(DataTable)
        table.clear()
        if state is None:
            self.sub_title = f"{self.store.path} (no state yet)"
            return

        self.sub_title = f"run '{state.run_id}': {state.status.value}"
        for step in state.steps.values():
            style = STATUS_STYLES[step.status]
            table.add_row(
                step.name,
                f"[{style}]{step.status.value}[/{style}]",
                str(step.retries),
                _duration(step),
                step.error or "",
                key=step.name,
            )
            previous = self._last_status.get(step.name)
            if previous is not None and previous != step.status:
                severity = "error" if step.status == StepStatus.FAILED else "info"
                self.log_message(
                    f"{step.name}: {previous.value} -> {step.status.value}",
                    severity=severity,
                )
            self._last_status[step.name] = step.status
