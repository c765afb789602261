"""
Rollback Coordinator

Architectural Intent:
- Compensates steps applied in the current run when an atomic run fails
- Walks completed steps in reverse completion order, each exactly once
- Best-effort: a failing compensation is logged and the walk continues;
  rollback never triggers another rollback
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from keystone.application.orchestration.calls import (
    accepts_argument,
    call_blocking_or_async,
)
from keystone.domain.entities.step import Step, StepContext
from keystone.domain.errors import RollbackError

logger = logging.getLogger(__name__)


@dataclass
class RollbackReport:
    rolled_back: list[str] = field(default_factory=list)
    without_compensation: list[str] = field(default_factory=list)
    failures: list[RollbackError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class RollbackCoordinator:
    async def rollback(
        self,
        completed: Sequence[Step],
        context_for: Callable[[Step], StepContext],
    ) -> RollbackReport:
        """Compensate ``completed`` (given in completion order) newest first."""
        report = RollbackReport()
        if not completed:
            return report

        logger.warning("Rolling back %d completed step(s)", len(completed))
        for step in reversed(completed):
            if step.compensate is None:
                logger.info("Step '%s' has no compensating action", step.name)
                report.without_compensation.append(step.name)
                continue

            logger.info("Rolling back step: %s", step.name)
            try:
                if accepts_argument(step.compensate):
                    await call_blocking_or_async(step.compensate, context_for(step))
                else:
                    await call_blocking_or_async(step.compensate)
            except Exception as exc:
                error = RollbackError(step.name, exc)
                logger.error("%s", error)
                report.failures.append(error)
                continue
            report.rolled_back.append(step.name)

        return report
