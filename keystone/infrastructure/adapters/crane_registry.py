"""
Crane Registry Adapter

Architectural Intent:
- Infrastructure adapter implementing RegistryPort with the ``crane`` CLI
- Registry credentials come from the docker config crane already reads
"""

import logging

from keystone.domain.ports.registry_port import RegistryPort
from keystone.domain.ports.tool_runner_port import ToolRunnerPort

logger = logging.getLogger(__name__)


class CraneRegistry(RegistryPort):
    def __init__(self, runner: ToolRunnerPort, timeout: float = 600.0, insecure: bool = False):
        self.runner = runner
        self.timeout = timeout
        self.insecure = insecure

    def _flags(self) -> list[str]:
        return ["--insecure"] if self.insecure else []

    def image_exists(self, reference: str) -> None:
        self.runner.run(
            ["crane", "manifest", reference, *self._flags()],
            timeout=self.timeout,
        )

    def copy_image(self, source: str, destination: str) -> None:
        logger.info("Copying image %s -> %s", source, destination)
        self.runner.run(
            ["crane", "copy", source, destination, *self._flags()],
            timeout=self.timeout,
        )
