"""
Deploy Applications Use Case

Architectural Intent:
- Helm deployment as its own six-step workflow, run by the same scheduler
- Atomic by default: a failing required step uninstalls the charts and
  removes namespaces this run created, newest first
- Standalone (``keystone deploy``, persisted under run id "deploy") or
  nested as the install's ``deploy`` handler (in-memory state)

Workflow:
    validate-environment -> prepare-namespace -> resolve-dependencies
        -> deploy-charts -> health-check -> validate-deployment
"""

from __future__ import annotations
import logging
import shlex
import threading
from pathlib import Path
from typing import Optional

from keystone.application.dtos.run_dtos import RunOptions
from keystone.application.orchestration.scheduler import StepScheduler
from keystone.domain.entities.step import Step, StepContext
from keystone.domain.errors import KeystoneError
from keystone.domain.ports.event_bus_port import EventBusPort
from keystone.domain.ports.state_store_port import StateStorePort
from keystone.domain.ports.tool_runner_port import ToolRunnerPort
from keystone.domain.services.dependency_graph import build_plan, filter_steps
from keystone.domain.value_objects.run_result import RunResult
from keystone.infrastructure.config import ChartConfig
from keystone.infrastructure.repositories.json_state_store import InMemoryStateStore

logger = logging.getLogger(__name__)

DEPLOY_RUN_ID = "deploy"
CHART_STEPS = ("resolve-dependencies", "deploy-charts")


class DeploymentFailedError(KeystoneError):
    pass


class DeployApplications:
    def __init__(
        self,
        runner: ToolRunnerPort,
        config,
        state_store: Optional[StateStorePort] = None,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.runner = runner
        self.config = config
        self.state_store = state_store
        self.event_bus = event_bus
        self._created_namespaces: list[str] = []

    @property
    def deployment(self):
        return self.config.deployment

    # -- Workflow ------------------------------------------------------------

    def build_steps(self) -> list[Step]:
        section = self.config.section("deployment")
        return [
            Step(
                name="validate-environment",
                description="Check cluster access and tooling",
                handler=self.validate_environment,
                config=section,
            ),
            Step(
                name="prepare-namespace",
                description="Create target namespaces",
                handler=self.prepare_namespaces,
                dependencies={"validate-environment"},
                compensate=self.delete_created_namespaces,
                config=section,
            ),
            Step(
                name="resolve-dependencies",
                description="Resolve Helm chart dependencies",
                handler=self.resolve_dependencies,
                dependencies={"prepare-namespace"},
                config=section,
            ),
            Step(
                name="deploy-charts",
                description="Install or upgrade Helm releases",
                handler=self.deploy_charts,
                dependencies={"resolve-dependencies"},
                compensate=self.uninstall_charts,
                config=section,
            ),
            Step(
                name="health-check",
                description="Wait for workloads to become ready",
                handler=self.health_check,
                dependencies={"deploy-charts"},
                config=section,
            ),
            Step(
                name="validate-deployment",
                description="Verify Helm release status",
                handler=self.validate_deployment,
                dependencies={"health-check"},
                config=section,
            ),
        ]

    async def run(
        self,
        options: RunOptions,
        charts_only: bool = False,
        skip_health_check: Optional[bool] = None,
        state_store: Optional[StateStorePort] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        if skip_health_check is None:
            skip_health_check = self.deployment.skip_health_check

        steps = self.build_steps()
        if charts_only:
            steps, removed = filter_steps(steps, only=CHART_STEPS)
        elif skip_health_check:
            steps, removed = filter_steps(steps, skip=("health-check",))
        else:
            steps, removed = filter_steps(steps)
        plan = build_plan(steps, assume_satisfied=removed)

        store = state_store or self.state_store or InMemoryStateStore()
        scheduler = StepScheduler(store, event_bus=self.event_bus, config=self.config)
        self._created_namespaces = []
        return await scheduler.run(plan, options, cancel_event=cancel_event)

    async def execute(self, ctx: StepContext) -> None:
        """Nested entry point: the install's ``deploy`` step."""
        ctx.raise_if_cancelled()
        options = RunOptions(
            run_id=DEPLOY_RUN_ID,
            atomic=self.deployment.atomic,
            dry_run=ctx.dry_run,
        )
        result = await self.run(
            options,
            state_store=InMemoryStateStore(),
            cancel_event=ctx.cancel_event,
        )
        if not result.success:
            failed = ", ".join(s.name for s in result.steps if s.failed) or "none"
            raise DeploymentFailedError(
                f"Deployment workflow failed (failed steps: {failed}; "
                f"rolled back: {', '.join(result.rolled_back) or 'nothing'})"
            )

    def compensate(self, ctx: StepContext) -> None:
        """Install-level rollback of a deployment that completed."""
        self.uninstall_charts(ctx)

    # -- Step handlers -------------------------------------------------------

    def _charts(self) -> list[ChartConfig]:
        return sorted(self.deployment.charts, key=lambda c: c.order)

    def _namespace(self, chart: ChartConfig) -> str:
        return chart.namespace or self.deployment.namespace

    def _chart_path(self, chart: ChartConfig) -> str:
        path = Path(chart.path)
        if not path.is_absolute():
            path = self.config.workspace / "charts" / path
        return str(path)

    def _kubectl(self, *args: str, check: bool = True):
        context = (
            ["--context", self.deployment.kube_context]
            if self.deployment.kube_context
            else []
        )
        return self.runner.run(["kubectl", *context, *args], check=check)

    def _helm(self, *args: str, check: bool = True):
        context = (
            ["--kube-context", self.deployment.kube_context]
            if self.deployment.kube_context
            else []
        )
        return self.runner.run(["helm", *context, *args], check=check)

    def validate_environment(self) -> None:
        if not self.deployment.charts:
            raise DeploymentFailedError("No charts configured under deployment.charts")
        self._kubectl("cluster-info")
        self._helm("version", "--short")

    def prepare_namespaces(self, ctx: StepContext) -> None:
        if not self.deployment.create_namespace:
            return
        for namespace in dict.fromkeys(self._namespace(c) for c in self._charts()):
            ctx.raise_if_cancelled()
            if self._kubectl("get", "namespace", namespace, check=False).ok:
                continue
            self._kubectl("create", "namespace", namespace)
            self._created_namespaces.append(namespace)
            logger.info("Created namespace %s", namespace)

    def delete_created_namespaces(self) -> None:
        for namespace in reversed(self._created_namespaces):
            self._kubectl("delete", "namespace", namespace, "--ignore-not-found")
        self._created_namespaces = []

    def resolve_dependencies(self, ctx: StepContext) -> None:
        for chart in self._charts():
            ctx.raise_if_cancelled()
            self._helm("dependency", "build", self._chart_path(chart))

    def deploy_charts(self, ctx: StepContext) -> None:
        for chart in self._charts():
            ctx.raise_if_cancelled()
            args = [
                "upgrade",
                "--install",
                chart.name,
                self._chart_path(chart),
                "--namespace",
                self._namespace(chart),
                "--timeout",
                self.deployment.helm_timeout,
            ]
            if chart.values_file:
                args += ["--values", chart.values_file]
            if self.deployment.wait:
                args.append("--wait")
            logger.info("Deploying chart %s", chart.name)
            self._helm(*args)

    def uninstall_charts(self, ctx: Optional[StepContext] = None) -> None:
        errors = []
        for chart in reversed(self._charts()):
            result = self._helm(
                "uninstall", chart.name, "--namespace", self._namespace(chart),
                check=False,
            )
            if not result.ok and "not found" not in result.stderr:
                errors.append(f"{chart.name}: {result.stderr.strip()}")
        if errors:
            raise DeploymentFailedError("helm uninstall failed: " + "; ".join(errors))

    def health_check(self, ctx: StepContext) -> None:
        if self.deployment.health_check_command:
            self.runner.run(
                shlex.split(self.deployment.health_check_command),
                cwd=str(self.config.workspace),
            )
            return
        for namespace in dict.fromkeys(self._namespace(c) for c in self._charts()):
            ctx.raise_if_cancelled()
            self._kubectl(
                "wait", "--for=condition=Ready", "pods", "--all",
                "--namespace", namespace,
                f"--timeout={self.deployment.helm_timeout}",
            )

    def validate_deployment(self) -> None:
        for chart in self._charts():
            self._helm("status", chart.name, "--namespace", self._namespace(chart))
