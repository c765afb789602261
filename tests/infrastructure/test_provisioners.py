"""Tests for the provisioning strategies and the registry adapter."""

from pathlib import Path

import pytest

from keystone.domain.ports.provisioner_port import ProvisioningMode
from keystone.infrastructure.adapters.crane_registry import CraneRegistry
from keystone.infrastructure.adapters.provisioners import (
    HybridProvisioner,
    MakefileProvisioner,
    ProvisioningError,
    TerraformProvisioner,
    create_provisioner,
)
from keystone.infrastructure.config import InfrastructureConfig


class TestTerraformProvisioner:
    def test_lifecycle_commands(self, fake_runner):
        provisioner = TerraformProvisioner(
            fake_runner, "/ws/modules", var_files=("prod.tfvars",), parallelism=4
        )
        provisioner.init()
        provisioner.validate()
        provisioner.plan()
        provisioner.apply()

        assert fake_runner.commands() == [
            "terraform init -input=false -no-color",
            "terraform validate -no-color",
            "terraform plan -input=false -no-color -var-file=prod.tfvars",
            "terraform apply -input=false -no-color -parallelism=4 -auto-approve "
            "-var-file=prod.tfvars",
        ]

    def test_apply_without_auto_approve(self, fake_runner):
        TerraformProvisioner(fake_runner, "/ws", auto_approve=False).apply()
        assert "-auto-approve" not in fake_runner.calls[0]

    def test_destroy_always_auto_approves(self, fake_runner):
        TerraformProvisioner(fake_runner, "/ws", auto_approve=False).destroy()
        assert "-auto-approve" in fake_runner.calls[0]


class TestMakefileProvisioner:
    def test_one_target_per_operation(self, fake_runner):
        provisioner = MakefileProvisioner(fake_runner, "/ws")
        for operation in ("init", "validate", "plan", "apply", "destroy"):
            getattr(provisioner, operation)()

        assert fake_runner.commands() == [
            "make init", "make validate", "make plan", "make apply", "make destroy",
        ]


class TestHybridProvisioner:
    def _hybrid(self, runner):
        return HybridProvisioner(
            MakefileProvisioner(runner, "/ws"), TerraformProvisioner(runner, "/ws/modules")
        )

    def test_makefile_first_on_the_way_up(self, fake_runner):
        self._hybrid(fake_runner).apply()
        assert [c[0] for c in fake_runner.calls] == ["make", "terraform"]

    def test_terraform_first_on_the_way_down(self, fake_runner):
        self._hybrid(fake_runner).destroy()
        assert [c[0] for c in fake_runner.calls] == ["terraform", "make"]

    def test_destroy_attempts_both_halves(self, runner_factory):
        runner = runner_factory(fail_on={"terraform destroy": "state locked"})

        with pytest.raises(ProvisioningError, match="terraform"):
            self._hybrid(runner).destroy()

        assert runner.calls[-1] == ["make", "destroy"]


class TestCreateProvisioner:
    def test_directories_resolved_against_workspace(self, fake_runner):
        infrastructure = InfrastructureConfig(terraform_dir="tf", makefile_dir="ops")
        provisioner = create_provisioner("hybrid", fake_runner, "/ws", infrastructure)

        assert provisioner.mode is ProvisioningMode.HYBRID
        assert provisioner.terraform.working_dir == str(Path("/ws/tf"))
        assert provisioner.makefile.working_dir == str(Path("/ws/ops"))

    def test_accepts_enum(self, fake_runner):
        provisioner = create_provisioner(
            ProvisioningMode.MAKEFILE, fake_runner, "/ws", InfrastructureConfig()
        )
        assert isinstance(provisioner, MakefileProvisioner)

    def test_unknown_mode(self, fake_runner):
        with pytest.raises(ValueError):
            create_provisioner("ansible", fake_runner, "/ws", InfrastructureConfig())


class TestCraneRegistry:
    def test_image_exists(self, fake_runner):
        CraneRegistry(fake_runner).image_exists("vendor.io/app:1.0")
        assert fake_runner.commands() == ["crane manifest vendor.io/app:1.0"]

    def test_copy_insecure(self, fake_runner):
        CraneRegistry(fake_runner, insecure=True).copy_image("a/app:1", "b/app:1")
        assert fake_runner.calls == [["crane", "copy", "a/app:1", "b/app:1", "--insecure"]]
