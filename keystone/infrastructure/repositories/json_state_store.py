"""
JSON State Store

Architectural Intent:
- File-backed StateStorePort: one JSON document per state file
- Saves are atomic (temp file in the same directory, then os.replace), so a
  crash mid-write leaves the previous snapshot loadable
- File I/O runs in the default executor to keep the event loop free

Design Decisions:
- The document carries its run id; loading a file written for another run
  is a mismatch, not an empty state
- A corrupt file is an error, never silently treated as "no state"
"""

from __future__ import annotations
import asyncio
import copy
import functools
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from keystone.domain.entities.install_state import InstallState
from keystone.domain.errors import KeystoneError, StateFingerprintMismatchError
from keystone.domain.ports.state_store_port import StateStorePort

logger = logging.getLogger(__name__)


class StateFileError(KeystoneError):
    pass


class JsonStateStore(StateStorePort):
    """Persists InstallState to a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self, run_id: str) -> Optional[InstallState]:
        data = await self._in_executor(self._read)
        if data is None:
            return None
        state = InstallState.from_dict(data)
        if state.run_id != run_id:
            raise StateFingerprintMismatchError(
                f"run {state.run_id}", state.run_id, run_id
            )
        logger.info(
            "Loaded state for run '%s' from %s (%d step(s))",
            run_id,
            self.path,
            len(state.steps),
        )
        return state

    async def save(self, state: InstallState) -> None:
        payload = json.dumps(state.to_dict(), indent=2)
        await self._in_executor(self._write, payload)

    async def clear(self, run_id: str) -> bool:
        return await self._in_executor(self._remove)

    def peek(self) -> Optional[InstallState]:
        """Synchronous read of whatever run the file holds (dashboards, status)."""
        data = self._read()
        return InstallState.from_dict(data) if data is not None else None

    async def _in_executor(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _read(self) -> Optional[dict]:
        try:
            with open(self.path) as f:
                return json.load(f)
        except FileNotFoundError:
            logger.debug("State file not found: %s", self.path)
            return None
        except json.JSONDecodeError as e:
            raise StateFileError(f"State file {self.path} is corrupt: {e}") from e

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _remove(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Cleared state file %s", self.path)
        return True


class InMemoryStateStore(StateStorePort):
    """Non-durable store for nested workflows and tests."""

    def __init__(self) -> None:
        self._states: dict[str, InstallState] = {}
        self.saves = 0

    async def load(self, run_id: str) -> Optional[InstallState]:
        state = self._states.get(run_id)
        return copy.deepcopy(state) if state is not None else None

    async def save(self, state: InstallState) -> None:
        self._states[state.run_id] = copy.deepcopy(state)
        self.saves += 1

    async def clear(self, run_id: str) -> bool:
        return self._states.pop(run_id, None) is not None
