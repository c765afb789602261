"""Global test configuration.

Shared fakes for the ports the step handlers talk to, so no test ever
shells out to terraform, helm, kubectl, crane or git.
"""

from typing import Mapping, Optional, Sequence

import pytest

from keystone.domain.errors import CommandError
from keystone.domain.ports.tool_runner_port import CommandResult, ToolRunnerPort
from keystone.infrastructure.config import KeystoneConfig, InstallerConfig


class FakeToolRunner(ToolRunnerPort):
    """Records every command; ``fail_on`` maps a command prefix to stderr."""

    def __init__(self, fail_on: Optional[dict[str, str]] = None, missing=()):
        self.calls: list[list[str]] = []
        self.fail_on = dict(fail_on or {})
        self.missing = set(missing)

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        command = " ".join(args)
        for prefix, stderr in self.fail_on.items():
            if command.startswith(prefix):
                if check:
                    raise CommandError(command, 1, stderr)
                return CommandResult(command, 1, "", stderr)
        return CommandResult(command, 0, "", "")

    def which(self, tool: str) -> Optional[str]:
        return None if tool in self.missing else f"/usr/bin/{tool}"

    def commands(self) -> list[str]:
        return [" ".join(c) for c in self.calls]


@pytest.fixture
def fake_runner():
    return FakeToolRunner()


@pytest.fixture
def runner_factory():
    """Build a FakeToolRunner with failing prefixes or missing tools."""
    return FakeToolRunner


@pytest.fixture
def workspace_config(tmp_path):
    return KeystoneConfig(installer=InstallerConfig(workspace=str(tmp_path / "ws")))
