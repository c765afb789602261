"""
Step Scheduler

Architectural Intent:
- Executes an ExecutionPlan against a StateStore with resume, failure
  containment and optional atomic rollback
- Sequential mode: one step at a time, level then registration order
- Parallel mode: levels are barriers; the steps of one level are dispatched
  through the bounded-concurrency synchronizer
- Presentation stays out: progress is published as domain events

Failure Policy:
- Any failed step blocks its transitive dependents (recorded SKIPPED)
- Required failure aborts the run unless continue_on_error is set
- Atomic runs always abort on a required failure and compensate the steps
  completed in this run, newest first
- Every state transition is saved before the next step starts; state is
  saved one final time even when the run is interrupted
"""

from __future__ import annotations
import asyncio
import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, UTC
from typing import Any, Optional

from keystone.application.dtos.run_dtos import RunOptions
from keystone.application.orchestration.calls import (
    accepts_argument,
    call_blocking_or_async,
)
from keystone.application.orchestration.rollback import RollbackCoordinator
from keystone.application.orchestration.synchronizer import run_all, tasks_from
from keystone.domain.entities.install_state import (
    InstallState,
    RunStatus,
    StepState,
    StepStatus,
)
from keystone.domain.entities.step import Step, StepContext
from keystone.domain.errors import (
    AggregateSyncError,
    StateFingerprintMismatchError,
    StepExecutionError,
)
from keystone.domain.events.event_base import DomainEvent
from keystone.domain.events.step_events import (
    RollbackFinished,
    RunFinished,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
)
from keystone.domain.ports.event_bus_port import EventBusPort
from keystone.domain.ports.state_store_port import StateStorePort
from keystone.domain.value_objects.execution_plan import ExecutionPlan
from keystone.domain.value_objects.fingerprint import Fingerprint
from keystone.domain.value_objects.run_result import CompletedStep, RunResult

logger = logging.getLogger(__name__)

INTERRUPTED = "interrupted before completion"


class _DryRunStore(StateStorePort):
    """Reads through to the real store, never writes."""

    def __init__(self, inner: StateStorePort) -> None:
        self._inner = inner

    async def load(self, run_id: str) -> Optional[InstallState]:
        return await self._inner.load(run_id)

    async def save(self, state: InstallState) -> None:
        return None

    async def clear(self, run_id: str) -> bool:
        return False


class _Run:
    """Mutable bookkeeping for one execution. Touched only from the event loop."""

    def __init__(
        self,
        plan: ExecutionPlan,
        options: RunOptions,
        state: InstallState,
        store: StateStorePort,
        config: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.plan = plan
        self.options = options
        self.state = state
        self.store = store
        self.config = config
        self.lock = asyncio.Lock()
        self.cancel_event = (
            cancel_event if cancel_event is not None else threading.Event()
        )
        self.records: dict[str, CompletedStep] = {}
        self.applied: list[Step] = []
        self.blocked: dict[str, str] = {}
        self.abort_reason: Optional[str] = None
        self.rollback_pending = False
        self.result = RunResult(
            run_id=options.run_id,
            dry_run=options.dry_run,
            resumed=options.resume,
        )

    def abort(self, reason: str) -> None:
        if self.abort_reason is None:
            self.abort_reason = reason

    def log_extra(self, step: Step) -> dict[str, str]:
        return {"run_id": self.options.run_id, "step": step.name}

    def context_for(self, step: Step) -> StepContext:
        return StepContext(
            step_name=step.name,
            config=self.config,
            options=self.options,
            timeout=step.timeout,
            cancel_event=self.cancel_event,
        )

    def record(
        self,
        step: Step,
        status: StepStatus,
        duration: float = 0.0,
        error: Optional[str] = None,
        resumed: bool = False,
    ) -> None:
        self.records[step.name] = CompletedStep(
            name=step.name,
            description=step.description,
            status=status,
            duration=duration,
            error=error,
            required=step.required,
            resumed=resumed,
        )


class StepScheduler:
    def __init__(
        self,
        state_store: StateStorePort,
        event_bus: Optional[EventBusPort] = None,
        rollback: Optional[RollbackCoordinator] = None,
        config: Any = None,
    ) -> None:
        self.state_store = state_store
        self.event_bus = event_bus
        self.rollback = rollback or RollbackCoordinator()
        self.config = config

    async def run(
        self,
        plan: ExecutionPlan,
        options: RunOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        """Run ``plan``.

        ``cancel_event`` ties this run to an enclosing one: a nested workflow
        passes its step's event so the outer deadline reaches its sub-steps.
        """
        if options.parallel:
            return await self.execute_parallel(plan, options, cancel_event)
        return await self.execute_sequential(plan, options, cancel_event)

    async def execute_sequential(
        self,
        plan: ExecutionPlan,
        options: RunOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        return await self._execute(plan, options, False, cancel_event)

    async def execute_parallel(
        self,
        plan: ExecutionPlan,
        options: RunOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        return await self._execute(plan, options, True, cancel_event)

    # -- Run lifecycle -------------------------------------------------------

    async def _execute(
        self,
        plan: ExecutionPlan,
        options: RunOptions,
        parallel: bool,
        cancel_event: Optional[threading.Event],
    ) -> RunResult:
        store = _DryRunStore(self.state_store) if options.dry_run else self.state_store
        state = await self._prepare_state(plan, options, store)
        run = _Run(plan, options, state, store, self.config, cancel_event)

        logger.info(
            "Run '%s': %d step(s) in %d level(s), %s mode%s",
            options.run_id,
            len(plan),
            len(plan.levels),
            "parallel" if parallel else "sequential",
            " (dry run)" if options.dry_run else "",
        )

        timer = None
        if options.deadline_seconds:
            timer = asyncio.get_running_loop().call_later(
                options.deadline_seconds, run.cancel_event.set
            )

        try:
            levels = plan.levels if parallel else plan.as_sequential().levels
            for level in levels:
                if parallel and len(level) > 1 and run.abort_reason is None:
                    await self._run_level_parallel(run, level)
                else:
                    for step in level:
                        await self._run_step_sequential(run, step)
                if run.rollback_pending:
                    await self._rollback(run)
        except BaseException as exc:
            run.abort(f"interrupted: {exc!r}")
            raise
        finally:
            if timer is not None:
                timer.cancel()
            await self._finish(run)

        return run.result

    async def _prepare_state(
        self, plan: ExecutionPlan, options: RunOptions, store: StateStorePort
    ) -> InstallState:
        fingerprints = {s.name: str(Fingerprint.of(s)) for s in plan.steps}

        state: Optional[InstallState] = None
        if options.resume:
            state = await store.load(options.run_id)
            if state is None:
                logger.info("No saved state for run '%s'; starting fresh", options.run_id)

        if state is not None:
            for name, current in fingerprints.items():
                recorded = state.get(name)
                if (
                    recorded is not None
                    and recorded.status == StepStatus.COMPLETED
                    and recorded.fingerprint != current
                ):
                    raise StateFingerprintMismatchError(
                        name, recorded.fingerprint, current
                    )
            state = replace(
                state,
                steps=dict(state.steps),
                status=RunStatus.RUNNING,
                end_time=None,
                last_error=None,
                resume=True,
            )
        else:
            state = InstallState(run_id=options.run_id, resume=options.resume)

        for step in plan.steps:
            recorded = state.get(step.name)
            if recorded is None:
                state.record(StepState(step.name, fingerprint=fingerprints[step.name]))
            elif recorded.status == StepStatus.RUNNING:
                # Left behind by a crashed run
                logger.warning(
                    "Step '%s' was interrupted by a previous run; it will be retried",
                    step.name,
                )
                state.record(
                    replace(
                        recorded.fail(INTERRUPTED),
                        fingerprint=fingerprints[step.name],
                    )
                )
            elif recorded.status != StepStatus.COMPLETED:
                state.record(replace(recorded, fingerprint=fingerprints[step.name]))

        await store.save(state)
        return state

    async def _finish(self, run: _Run) -> None:
        result = run.result
        result.steps = [run.records[n] for n in run.plan.names if n in run.records]
        result.finished_at = datetime.now(UTC)
        result.aborted = run.abort_reason is not None
        result.abort_reason = run.abort_reason

        error = run.abort_reason
        if error is None and result.required_failures:
            first = result.required_failures[0]
            error = f"required step '{first.name}' failed: {first.error}"

        async with run.lock:
            run.state.finish(result.success, error)
            await run.store.save(run.state)

        logger.info(
            "Run '%s' finished: %s (%d completed, %d skipped, %d failed)",
            result.run_id,
            "success" if result.success else "failed",
            result.completed,
            result.skipped,
            result.failed,
        )
        await self._publish(
            run,
            RunFinished(
                success=result.success,
                summary={
                    "total": result.total,
                    "completed": result.completed,
                    "skipped": result.skipped,
                    "failed": result.failed,
                },
                error=error,
            ),
        )

    # -- Step execution ------------------------------------------------------

    async def _run_step_sequential(self, run: _Run, step: Step) -> None:
        try:
            await self._run_step(run, step)
        except StepExecutionError as exc:
            self._apply_failure_policy(run, step, exc)

    async def _run_level_parallel(self, run: _Run, level: tuple[Step, ...]) -> None:
        async def worker(task) -> None:
            await self._run_step(run, task.payload)

        try:
            await run_all(tasks_from(level), worker, limit=run.options.max_workers)
        except AggregateSyncError as exc:
            for outcome in sorted(exc.outcomes, key=lambda o: o.index):
                if not isinstance(outcome.error, StepExecutionError):
                    raise outcome.error
                self._apply_failure_policy(run, outcome.payload, outcome.error)

    async def _run_step(self, run: _Run, step: Step) -> None:
        """Run one step through its transitions.

        Raises:
            StepExecutionError: the handler raised; the failure is already
                recorded in state, result and the event stream.
        """
        if self._satisfied_by_resume(run, step):
            recorded = run.state.get(step.name)
            duration = 0.0
            if recorded.start_time and recorded.end_time:
                duration = (recorded.end_time - recorded.start_time).total_seconds()
            logger.info(
                "Step '%s' already completed; skipping",
                step.name,
                extra=run.log_extra(step),
            )
            run.record(step, StepStatus.COMPLETED, duration, resumed=True)
            await self._publish(
                run, StepCompleted(step_name=step.name, duration=duration, resumed=True)
            )
            return

        reason = self._skip_reason(run, step)
        if reason is not None:
            await self._skip(run, step, reason)
            return

        await self._transition(run, step.name, StepState.start)
        await self._publish(
            run, StepStarted(step_name=step.name, description=step.description)
        )
        logger.info(
            "Starting step '%s' (required=%s)",
            step.name,
            step.required,
            extra=run.log_extra(step),
        )
        started = time.monotonic()

        if run.options.dry_run:
            logger.info("DRY RUN: step '%s' not executed", step.name)
        else:
            try:
                await self._invoke(step, run.context_for(step))
            except Exception as exc:
                duration = time.monotonic() - started
                await self._transition(run, step.name, lambda s: s.fail(str(exc)))
                run.record(step, StepStatus.FAILED, duration, str(exc))
                logger.error(
                    "Step '%s' failed after %.1fs: %s",
                    step.name,
                    duration,
                    exc,
                    extra=run.log_extra(step),
                )
                await self._publish(
                    run,
                    StepFailed(
                        step_name=step.name,
                        error=str(exc),
                        required=step.required,
                        duration=duration,
                    ),
                )
                raise StepExecutionError(step.name, exc) from exc

        duration = time.monotonic() - started
        await self._transition(run, step.name, StepState.complete)
        run.applied.append(step)
        run.record(step, StepStatus.COMPLETED, duration)
        logger.info(
            "Step '%s' completed in %.1fs",
            step.name,
            duration,
            extra=run.log_extra(step),
        )
        await self._publish(run, StepCompleted(step_name=step.name, duration=duration))

    async def _invoke(self, step: Step, context: StepContext) -> None:
        if accepts_argument(step.handler):
            await call_blocking_or_async(step.handler, context)
        else:
            await call_blocking_or_async(step.handler)

    def _satisfied_by_resume(self, run: _Run, step: Step) -> bool:
        return (
            run.options.resume
            and not run.options.force
            and run.state.is_completed(step.name)
        )

    def _skip_reason(self, run: _Run, step: Step) -> Optional[str]:
        if run.abort_reason is not None:
            return f"run aborted: {run.abort_reason}"
        if run.cancel_event.is_set():
            run.abort("deadline exceeded")
            return "deadline exceeded"
        if step.name in run.blocked:
            return f"dependency '{run.blocked[step.name]}' did not complete"
        return None

    async def _skip(self, run: _Run, step: Step, reason: str) -> None:
        if not run.state.is_completed(step.name):
            await self._transition(run, step.name, lambda s: s.skip(reason))
        run.record(step, StepStatus.SKIPPED, error=reason)
        logger.info(
            "Step '%s' skipped: %s", step.name, reason, extra=run.log_extra(step)
        )
        await self._publish(run, StepSkipped(step_name=step.name, reason=reason))

    def _apply_failure_policy(
        self, run: _Run, step: Step, error: StepExecutionError
    ) -> None:
        for name in run.plan.transitive_dependents(step.name):
            run.blocked.setdefault(name, step.name)

        if not step.required:
            logger.warning("Optional step '%s' failed; continuing", step.name)
            return

        reason = f"required step '{step.name}' failed"
        if run.options.atomic:
            run.abort(reason)
            run.rollback_pending = True
        elif not run.options.continue_on_error:
            run.abort(reason)
        else:
            logger.warning("%s; continuing because continue-on-error is set", reason)

    async def _rollback(self, run: _Run) -> None:
        run.rollback_pending = False
        if run.options.dry_run:
            logger.info("DRY RUN: rollback of %d step(s) not executed", len(run.applied))
            return

        report = await self.rollback.rollback(list(run.applied), run.context_for)
        for name in report.rolled_back:
            await self._transition(run, name, StepState.reset)

        run.result.rolled_back = list(report.rolled_back)
        run.result.rollback_errors = [str(e) for e in report.failures]
        await self._publish(
            run,
            RollbackFinished(
                rolled_back=tuple(report.rolled_back),
                failures=tuple(str(e) for e in report.failures),
            ),
        )

    # -- State & events ------------------------------------------------------

    async def _transition(self, run: _Run, name: str, change) -> None:
        async with run.lock:
            run.state.record(change(run.state.get(name)))
            await run.store.save(run.state)

    async def _publish(self, run: _Run, event: DomainEvent) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish([replace(event, aggregate_id=run.options.run_id)])
