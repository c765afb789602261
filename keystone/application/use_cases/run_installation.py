"""
Run Installation Use Case

Architectural Intent:
- Registers the standard installation workflow and runs it through the
  StepScheduler
- Step filtering (--skip-steps / --steps-only) happens before the plan
  is built; filtered dependencies count as satisfied
- Each step's fingerprint covers the config sections its handler reads

Workflow:
    setup -> package-pull -> provision-infra -> {db-migrate?, deploy}
          -> {post-validate?, e2e-test?}        (? = optional)
"""

from __future__ import annotations
import logging
from typing import Any, Optional

from keystone.application.dtos.run_dtos import RunOptions
from keystone.application.orchestration.scheduler import StepScheduler
from keystone.domain.entities.step import Step
from keystone.domain.services.dependency_graph import build_plan, filter_steps
from keystone.domain.value_objects.execution_plan import ExecutionPlan
from keystone.domain.value_objects.run_result import RunResult

logger = logging.getLogger(__name__)

INSTALL_RUN_ID = "install"


class RunInstallation:
    def __init__(
        self,
        scheduler: StepScheduler,
        config,
        prepare_workspace,
        sync_artifacts,
        provision_infrastructure,
        migrate_database,
        deploy_applications,
        post_validate,
        run_e2e_tests,
    ):
        self.scheduler = scheduler
        self.config = config
        self.prepare_workspace = prepare_workspace
        self.sync_artifacts = sync_artifacts
        self.provision_infrastructure = provision_infrastructure
        self.migrate_database = migrate_database
        self.deploy_applications = deploy_applications
        self.post_validate = post_validate
        self.run_e2e_tests = run_e2e_tests

    def _sections(self, *names: str) -> dict[str, Any]:
        return {name: self.config.section(name) for name in names}

    def _timeout(self, section: str) -> Optional[float]:
        return getattr(self.config, section).timeout_seconds or None

    def build_steps(self) -> list[Step]:
        return [
            Step(
                name="setup",
                description="Prepare workspace",
                handler=self.prepare_workspace.execute,
                config=self._sections("installer"),
            ),
            Step(
                name="package-pull",
                description="Sync images, charts and modules",
                handler=self.sync_artifacts.execute,
                dependencies={"setup"},
                config=self._sections("artifacts"),
            ),
            Step(
                name="provision-infra",
                description="Provision infrastructure",
                handler=self.provision_infrastructure.execute,
                dependencies={"package-pull"},
                compensate=self.provision_infrastructure.compensate,
                config=self._sections("infrastructure"),
                timeout=self._timeout("infrastructure"),
            ),
            Step(
                name="db-migrate",
                description="Run database migrations",
                handler=self.migrate_database.execute,
                dependencies={"provision-infra"},
                required=False,
                config=self._sections("database"),
                timeout=self._timeout("database"),
            ),
            Step(
                name="deploy",
                description="Deploy applications",
                handler=self.deploy_applications.execute,
                dependencies={"provision-infra"},
                compensate=self.deploy_applications.compensate,
                config=self._sections("deployment"),
            ),
            Step(
                name="post-validate",
                description="Post-deployment validation",
                handler=self.post_validate.execute,
                dependencies={"deploy"},
                required=False,
                config=self._sections("validation"),
                timeout=self._timeout("validation"),
            ),
            Step(
                name="e2e-test",
                description="End-to-end tests",
                handler=self.run_e2e_tests.execute,
                dependencies={"deploy"},
                required=False,
                config=self._sections("testing"),
                timeout=self._timeout("testing"),
            ),
        ]

    def plan(self, options: RunOptions, steps: Optional[list[Step]] = None) -> ExecutionPlan:
        """Filter and validate the workflow.

        Raises:
            ValueError: unknown step names in the filters.
            GraphValidationError: the remaining steps do not form a DAG.
        """
        steps = steps if steps is not None else self.build_steps()
        kept, removed = filter_steps(
            steps, skip=options.skip_steps, only=options.steps_only
        )
        if removed:
            logger.info("Filtered out step(s): %s", ", ".join(sorted(removed)))
        return build_plan(kept, assume_satisfied=removed)

    async def execute(self, options: RunOptions) -> RunResult:
        plan = self.plan(options)
        return await self.scheduler.run(plan, options)
