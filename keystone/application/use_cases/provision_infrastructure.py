"""
Provision Infrastructure Use Case

Architectural Intent:
- Handler for the ``provision-infra`` step
- Strategy-agnostic: drives whatever ProvisionerPort was selected from
  the configured ProvisioningMode
- Compensation is ``destroy`` so an atomic install can tear down what it built
"""

import logging

from keystone.domain.entities.step import StepContext
from keystone.domain.ports.provisioner_port import ProvisionerPort

logger = logging.getLogger(__name__)


class ProvisionInfrastructure:
    def __init__(self, provisioner: ProvisionerPort, config):
        self.provisioner = provisioner
        self.config = config

    def execute(self, ctx: StepContext) -> None:
        if not self.config.infrastructure.enabled:
            logger.info("Infrastructure provisioning disabled; nothing to do")
            return

        logger.info("Provisioning infrastructure (%s)", self.provisioner.mode.value)
        for operation in (
            self.provisioner.init,
            self.provisioner.validate,
            self.provisioner.plan,
            self.provisioner.apply,
        ):
            ctx.raise_if_cancelled()
            operation()

    def compensate(self, ctx: StepContext) -> None:
        if not self.config.infrastructure.enabled:
            return
        logger.warning("Destroying provisioned infrastructure")
        self.provisioner.destroy()
