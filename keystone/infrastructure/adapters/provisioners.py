"""
Provisioner Adapters

Architectural Intent:
- One ProvisionerPort implementation per ProvisioningMode
- Terraform and Makefile strategies drive their CLI through ToolRunnerPort
- Hybrid composes the two: makefile first on the way up, terraform first
  on the way down
- create_provisioner is the single place the mode is inspected
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Sequence

from keystone.domain.errors import KeystoneError
from keystone.domain.ports.provisioner_port import ProvisionerPort, ProvisioningMode
from keystone.domain.ports.tool_runner_port import ToolRunnerPort

logger = logging.getLogger(__name__)


class ProvisioningError(KeystoneError):
    pass


class TerraformProvisioner(ProvisionerPort):
    mode = ProvisioningMode.TERRAFORM

    def __init__(
        self,
        runner: ToolRunnerPort,
        working_dir: str | Path,
        var_files: Sequence[str] = (),
        auto_approve: bool = True,
        parallelism: int = 10,
        timeout: float | None = None,
    ):
        self.runner = runner
        self.working_dir = str(working_dir)
        self.var_files = tuple(var_files)
        self.auto_approve = auto_approve
        self.parallelism = parallelism
        self.timeout = timeout

    def _terraform(self, *args: str) -> None:
        self.runner.run(
            ["terraform", *args],
            cwd=self.working_dir,
            env={"TF_IN_AUTOMATION": "1"},
            timeout=self.timeout,
        )

    def _var_args(self) -> list[str]:
        return [f"-var-file={path}" for path in self.var_files]

    def init(self) -> None:
        logger.info("terraform init in %s", self.working_dir)
        self._terraform("init", "-input=false", "-no-color")

    def plan(self) -> None:
        self._terraform("plan", "-input=false", "-no-color", *self._var_args())

    def apply(self) -> None:
        args = ["apply", "-input=false", "-no-color", f"-parallelism={self.parallelism}"]
        if self.auto_approve:
            args.append("-auto-approve")
        self._terraform(*args, *self._var_args())

    def destroy(self) -> None:
        logger.warning("terraform destroy in %s", self.working_dir)
        self._terraform(
            "destroy", "-input=false", "-no-color", "-auto-approve", *self._var_args()
        )

    def validate(self) -> None:
        self._terraform("validate", "-no-color")


class MakefileProvisioner(ProvisionerPort):
    """Runs ``make <target>``, one target per lifecycle operation."""

    mode = ProvisioningMode.MAKEFILE

    def __init__(self, runner: ToolRunnerPort, working_dir: str | Path, timeout: float | None = None):
        self.runner = runner
        self.working_dir = str(working_dir)
        self.timeout = timeout

    def _make(self, target: str) -> None:
        logger.info("make %s in %s", target, self.working_dir)
        self.runner.run(["make", target], cwd=self.working_dir, timeout=self.timeout)

    def init(self) -> None:
        self._make("init")

    def plan(self) -> None:
        self._make("plan")

    def apply(self) -> None:
        self._make("apply")

    def destroy(self) -> None:
        self._make("destroy")

    def validate(self) -> None:
        self._make("validate")


class HybridProvisioner(ProvisionerPort):
    mode = ProvisioningMode.HYBRID

    def __init__(self, makefile: MakefileProvisioner, terraform: TerraformProvisioner):
        self.makefile = makefile
        self.terraform = terraform

    def init(self) -> None:
        self.makefile.init()
        self.terraform.init()

    def plan(self) -> None:
        self.makefile.plan()
        self.terraform.plan()

    def apply(self) -> None:
        self.makefile.apply()
        self.terraform.apply()

    def destroy(self) -> None:
        # Both halves are attempted even when the first one fails.
        errors = []
        for strategy in (self.terraform, self.makefile):
            try:
                strategy.destroy()
            except Exception as e:
                logger.error("%s destroy failed: %s", strategy.mode.value, e)
                errors.append(f"{strategy.mode.value}: {e}")
        if errors:
            raise ProvisioningError("Hybrid destroy failed: " + "; ".join(errors))

    def validate(self) -> None:
        self.makefile.validate()
        self.terraform.validate()


def create_provisioner(
    mode: ProvisioningMode | str,
    runner: ToolRunnerPort,
    workspace: str | Path,
    infrastructure,
) -> ProvisionerPort:
    """Build the strategy for ``mode`` from an InfrastructureConfig section.

    Raises:
        ValueError: ``mode`` is not a known ProvisioningMode value.
    """
    mode = ProvisioningMode(mode)
    workspace = Path(workspace)
    timeout = infrastructure.timeout_seconds or None

    def terraform() -> TerraformProvisioner:
        return TerraformProvisioner(
            runner,
            workspace / infrastructure.terraform_dir,
            var_files=infrastructure.var_files,
            auto_approve=infrastructure.auto_approve,
            parallelism=infrastructure.parallelism,
            timeout=timeout,
        )

    def makefile() -> MakefileProvisioner:
        return MakefileProvisioner(
            runner, workspace / infrastructure.makefile_dir, timeout=timeout
        )

    if mode is ProvisioningMode.TERRAFORM:
        return terraform()
    if mode is ProvisioningMode.MAKEFILE:
        return makefile()
    return HybridProvisioner(makefile(), terraform())
