"""
Prepare Workspace Use Case

Architectural Intent:
- Handler for the ``setup`` step
- Creates the workspace layout the later steps write into
- Fails fast when a required CLI tool is missing from PATH
"""

import logging

from keystone.domain.entities.step import StepContext
from keystone.domain.errors import KeystoneError
from keystone.domain.ports.tool_runner_port import ToolRunnerPort

logger = logging.getLogger(__name__)

WORKSPACE_DIRS = ("reports", "charts", "modules", "logs")


class MissingToolsError(KeystoneError):
    def __init__(self, tools: list[str]) -> None:
        super().__init__(f"Required tools not found on PATH: {', '.join(tools)}")
        self.tools = tools


class PrepareWorkspace:
    def __init__(self, runner: ToolRunnerPort, config):
        self.runner = runner
        self.config = config

    def execute(self, ctx: StepContext) -> None:
        workspace = self.config.workspace
        for name in WORKSPACE_DIRS:
            (workspace / name).mkdir(parents=True, exist_ok=True)
        logger.info("Workspace ready at %s", workspace.resolve())

        missing = [
            tool
            for tool in self.config.installer.required_tools
            if self.runner.which(tool) is None
        ]
        if missing:
            raise MissingToolsError(missing)
