"""
Command Step Use Cases

Architectural Intent:
- Handlers for ``db-migrate``, ``post-validate`` and ``e2e-test``
- Each runs configured shell-style commands from the workspace through
  ToolRunnerPort; a disabled section makes the step a no-op
"""

import logging
import shlex
from typing import Optional, Sequence

from keystone.domain.entities.step import StepContext
from keystone.domain.errors import KeystoneError
from keystone.domain.ports.tool_runner_port import ToolRunnerPort

logger = logging.getLogger(__name__)


class ValidationFailedError(KeystoneError):
    def __init__(self, failures: Sequence[str]) -> None:
        super().__init__(
            f"{len(failures)} validation check(s) failed:\n"
            + "\n".join(f"  - {f}" for f in failures)
        )
        self.failures = tuple(failures)


def _timeout(ctx: StepContext, default: float) -> Optional[float]:
    """The step's own timeout wins over the section default; 0 means none."""
    timeout = ctx.timeout if ctx.timeout is not None else default
    return timeout or None


class _CommandStep:
    def __init__(self, runner: ToolRunnerPort, config):
        self.runner = runner
        self.config = config

    def _run(self, command: str, ctx: StepContext, default: float) -> None:
        self.runner.run(
            shlex.split(command),
            cwd=str(self.config.workspace),
            timeout=_timeout(ctx, default),
        )


class MigrateDatabase(_CommandStep):
    def execute(self, ctx: StepContext) -> None:
        database = self.config.database
        if not database.enabled:
            logger.info("Database migration disabled; nothing to do")
            return
        if not database.migrate_command:
            raise KeystoneError("database.migrate_command is not configured")

        logger.info("Running database migration")
        self._run(database.migrate_command, ctx, database.timeout_seconds)
        if database.validate_command:
            ctx.raise_if_cancelled()
            self._run(database.validate_command, ctx, database.timeout_seconds)


class PostValidate(_CommandStep):
    """Runs every check and reports all failures together."""

    def execute(self, ctx: StepContext) -> None:
        validation = self.config.validation
        if not validation.enabled or not validation.commands:
            logger.info("No post-deployment validation configured")
            return

        failures = []
        for command in validation.commands:
            ctx.raise_if_cancelled()
            try:
                self._run(command, ctx, validation.timeout_seconds)
            except KeystoneError as e:
                logger.error("Validation check failed: %s", e)
                failures.append(str(e))
        if failures:
            raise ValidationFailedError(failures)


class RunE2ETests(_CommandStep):
    def execute(self, ctx: StepContext) -> None:
        testing = self.config.testing
        if not testing.enabled:
            logger.info("End-to-end tests disabled; nothing to do")
            return

        command = [*shlex.split(testing.command), testing.suite, *testing.args]
        logger.info("Running end-to-end tests: %s", shlex.join(command))
        self.runner.run(
            command,
            cwd=str(self.config.workspace),
            timeout=_timeout(ctx, testing.timeout_seconds),
        )
