"""
Integration Tests: Installation Flow

Architectural Intent:
- Full wiring from create_container down to the tool runner seam
- Real scheduler, real JSON state file, fake CLI tools
"""

from dataclasses import replace

import pytest

from keystone.application.dtos.run_dtos import RunOptions
from keystone.composition_root import create_container
from keystone.domain.entities.install_state import RunStatus, StepStatus
from keystone.infrastructure.config import ChartConfig, DeploymentConfig


@pytest.fixture
def config(workspace_config):
    return replace(
        workspace_config,
        deployment=DeploymentConfig(
            namespace="apps", charts=(ChartConfig("backend", "backend"),)
        ),
    )


class TestInstallFlow:
    @pytest.mark.asyncio
    async def test_successful_install_without_e2e(self, config, fake_runner):
        container = create_container(config, tool_runner=fake_runner)
        result = await container.run_installation.execute(
            RunOptions(skip_steps=("e2e-test",))
        )

        assert result.success
        assert result.total == 6
        commands = fake_runner.commands()
        assert any(c.startswith("terraform apply") for c in commands)
        assert any(c.startswith("helm upgrade --install backend") for c in commands)

        state = container.state_store.peek()
        assert state.status == RunStatus.COMPLETED
        assert config.state_file.exists()

    @pytest.mark.asyncio
    async def test_deploy_failure_skips_dependents(self, config, runner_factory):
        runner = runner_factory(fail_on={"helm upgrade": "release failed"})
        container = create_container(config, tool_runner=runner)

        result = await container.run_installation.execute(RunOptions())

        assert not result.success
        assert result.failed == 1
        by_name = {s.name: s for s in result.steps}
        assert by_name["deploy"].failed
        assert by_name["post-validate"].skipped
        assert by_name["e2e-test"].skipped
        state = container.state_store.peek()
        assert state.status == RunStatus.FAILED
        assert state.get("provision-infra").status == StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resume_continues_at_failed_step(self, config, runner_factory):
        failing = runner_factory(fail_on={"helm upgrade": "release failed"})
        await create_container(config, tool_runner=failing).run_installation.execute(
            RunOptions()
        )

        healthy = runner_factory()
        result = await create_container(
            config, tool_runner=healthy
        ).run_installation.execute(RunOptions(resume=True))

        assert result.success
        assert result.resumed_steps == 4
        assert not any(c.startswith("terraform") for c in healthy.commands())
        assert any(c.startswith("helm upgrade") for c in healthy.commands())

    @pytest.mark.asyncio
    async def test_atomic_install_destroys_infrastructure(self, config, runner_factory):
        runner = runner_factory(fail_on={"helm upgrade": "release failed"})
        container = create_container(config, tool_runner=runner)

        result = await container.run_installation.execute(RunOptions(atomic=True))

        assert result.rolled_back == ["provision-infra"]
        assert any(c.startswith("terraform destroy") for c in runner.commands())
        state = container.state_store.peek()
        assert state.get("provision-infra").status == StepStatus.PENDING

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self, config, fake_runner):
        container = create_container(config, tool_runner=fake_runner)
        result = await container.run_installation.execute(RunOptions(dry_run=True))

        assert result.dry_run
        assert fake_runner.calls == []
        assert not config.state_file.exists()
