"""
Invoke Tool Runner

Architectural Intent:
- Infrastructure adapter implementing ToolRunnerPort via Invoke
- Runs terraform, make, helm, kubectl, crane and git on the local host
- Output is captured (hidden) and returned; failures become CommandError

Security:
- Arguments are joined with shlex so config values are never interpreted
  by the shell
"""

import logging
import shlex
import shutil
from typing import Mapping, Optional, Sequence

from invoke import Context
from invoke.exceptions import CommandTimedOut

from keystone.domain.errors import CommandError
from keystone.domain.ports.tool_runner_port import CommandResult, ToolRunnerPort

logger = logging.getLogger(__name__)


class InvokeToolRunner(ToolRunnerPort):
    """Adapter implementing ToolRunnerPort via invoke.Context.run."""

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    def _context(self) -> Context:
        return Context()

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        command = shlex.join(args)
        ctx = self._context()
        logger.debug("Running: %s (cwd=%s)", command, cwd or ".")

        try:
            if cwd:
                with ctx.cd(cwd):
                    result = self._run(ctx, command, env, timeout)
            else:
                result = self._run(ctx, command, env, timeout)
        except CommandTimedOut as e:
            raise CommandError(
                command, -1, f"timed out after {e.timeout}s"
            ) from e

        outcome = CommandResult(
            command=command,
            exit_code=result.exited,
            stdout=result.stdout,
            stderr=result.stderr,
        )
        if check and not outcome.ok:
            logger.error("Command failed (%d): %s", outcome.exit_code, command)
            raise CommandError(command, outcome.exit_code, outcome.stderr)
        return outcome

    def _run(self, ctx: Context, command: str, env, timeout):
        return ctx.run(
            command,
            hide=True,
            warn=True,
            env=dict(env or {}),
            timeout=timeout or self.default_timeout,
        )

    def which(self, tool: str) -> Optional[str]:
        return shutil.which(tool)
