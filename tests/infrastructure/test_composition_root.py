"""Tests for composition root DI container."""

from dataclasses import replace

import pytest

from keystone.composition_root import KeystoneContainer, create_container
from keystone.infrastructure.adapters.invoke_runner import InvokeToolRunner
from keystone.infrastructure.adapters.provisioners import (
    HybridProvisioner,
    MakefileProvisioner,
    TerraformProvisioner,
)
from keystone.infrastructure.config import InfrastructureConfig


class TestCompositionRoot:
    def test_create_container(self, workspace_config):
        container = create_container(workspace_config)

        assert isinstance(container, KeystoneContainer)
        assert isinstance(container.tool_runner, InvokeToolRunner)
        assert isinstance(container.provisioner, TerraformProvisioner)
        assert container.run_installation is not None

    def test_injected_runner_reaches_every_adapter(self, workspace_config, fake_runner):
        container = create_container(workspace_config, tool_runner=fake_runner)

        assert container.registry.runner is fake_runner
        assert container.provisioner.runner is fake_runner
        assert container.deploy_applications.runner is fake_runner
        assert container.prepare_workspace.runner is fake_runner

    def test_state_files(self, workspace_config):
        container = create_container(workspace_config)

        assert container.state_store.path == workspace_config.state_file
        assert container.deploy_state_store.path == workspace_config.deploy_state_file
        assert container.deploy_applications.state_store is container.deploy_state_store

    def test_scheduler_and_event_bus_are_shared(self, workspace_config):
        container = create_container(workspace_config)

        assert container.run_installation.scheduler is container.scheduler
        assert container.scheduler.event_bus is container.event_bus
        assert container.deploy_applications.event_bus is container.event_bus

    @pytest.mark.parametrize(
        "mode, expected",
        [
            ("terraform", TerraformProvisioner),
            ("makefile", MakefileProvisioner),
            ("hybrid", HybridProvisioner),
        ],
    )
    def test_provisioner_follows_mode(self, workspace_config, mode, expected):
        config = replace(workspace_config, infrastructure=InfrastructureConfig(mode=mode))
        assert isinstance(create_container(config).provisioner, expected)

    def test_unknown_mode_rejected(self, workspace_config):
        config = replace(workspace_config, infrastructure=InfrastructureConfig(mode="pulumi"))
        with pytest.raises(ValueError):
            create_container(config)
