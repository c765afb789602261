"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the Keystone application
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module (except CLI)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from one
  KeystoneConfig; the provisioning strategy is selected here, once
"""

from dataclasses import dataclass
from typing import Optional

from keystone.application.orchestration.rollback import RollbackCoordinator
from keystone.application.orchestration.scheduler import StepScheduler
from keystone.application.use_cases.deploy_applications import DeployApplications
from keystone.application.use_cases.prepare_workspace import PrepareWorkspace
from keystone.application.use_cases.provision_infrastructure import (
    ProvisionInfrastructure,
)
from keystone.application.use_cases.run_commands import (
    MigrateDatabase,
    PostValidate,
    RunE2ETests,
)
from keystone.application.use_cases.run_installation import RunInstallation
from keystone.application.use_cases.sync_artifacts import SyncArtifacts
from keystone.domain.ports.provisioner_port import ProvisionerPort
from keystone.domain.ports.registry_port import RegistryPort
from keystone.domain.ports.tool_runner_port import ToolRunnerPort
from keystone.infrastructure.adapters.crane_registry import CraneRegistry
from keystone.infrastructure.adapters.invoke_runner import InvokeToolRunner
from keystone.infrastructure.adapters.provisioners import create_provisioner
from keystone.infrastructure.config import KeystoneConfig
from keystone.infrastructure.event_bus import EventBus
from keystone.infrastructure.repositories.json_state_store import JsonStateStore


@dataclass
class KeystoneContainer:
    """DI container holding all wired dependencies."""

    config: KeystoneConfig
    tool_runner: ToolRunnerPort
    registry: RegistryPort
    provisioner: ProvisionerPort
    event_bus: EventBus
    state_store: JsonStateStore
    deploy_state_store: JsonStateStore
    scheduler: StepScheduler
    prepare_workspace: PrepareWorkspace
    sync_artifacts: SyncArtifacts
    provision_infrastructure: ProvisionInfrastructure
    migrate_database: MigrateDatabase
    deploy_applications: DeployApplications
    post_validate: PostValidate
    run_e2e_tests: RunE2ETests
    run_installation: RunInstallation


def create_container(
    config: KeystoneConfig,
    tool_runner: Optional[ToolRunnerPort] = None,
) -> KeystoneContainer:
    """Create and wire all dependencies.

    Raises:
        ValueError: ``infrastructure.mode`` is not a known provisioning mode.
    """
    tool_runner = tool_runner or InvokeToolRunner()
    registry = CraneRegistry(tool_runner)
    provisioner = create_provisioner(
        config.infrastructure.mode,
        tool_runner,
        config.workspace,
        config.infrastructure,
    )
    event_bus = EventBus()
    state_store = JsonStateStore(config.state_file)
    deploy_state_store = JsonStateStore(config.deploy_state_file)

    scheduler = StepScheduler(
        state_store,
        event_bus=event_bus,
        rollback=RollbackCoordinator(),
        config=config,
    )

    prepare_workspace = PrepareWorkspace(tool_runner, config)
    sync_artifacts = SyncArtifacts(registry, tool_runner, config)
    provision_infrastructure = ProvisionInfrastructure(provisioner, config)
    migrate_database = MigrateDatabase(tool_runner, config)
    deploy_applications = DeployApplications(
        tool_runner, config, state_store=deploy_state_store, event_bus=event_bus
    )
    post_validate = PostValidate(tool_runner, config)
    run_e2e_tests = RunE2ETests(tool_runner, config)

    run_installation = RunInstallation(
        scheduler,
        config,
        prepare_workspace=prepare_workspace,
        sync_artifacts=sync_artifacts,
        provision_infrastructure=provision_infrastructure,
        migrate_database=migrate_database,
        deploy_applications=deploy_applications,
        post_validate=post_validate,
        run_e2e_tests=run_e2e_tests,
    )

    return KeystoneContainer(
        config=config,
        tool_runner=tool_runner,
        registry=registry,
        provisioner=provisioner,
        event_bus=event_bus,
        state_store=state_store,
        deploy_state_store=deploy_state_store,
        scheduler=scheduler,
        prepare_workspace=prepare_workspace,
        sync_artifacts=sync_artifacts,
        provision_infrastructure=provision_infrastructure,
        migrate_database=migrate_database,
        deploy_applications=deploy_applications,
        post_validate=post_validate,
        run_e2e_tests=run_e2e_tests,
        run_installation=run_installation,
    )
