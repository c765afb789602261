"""
Bounded-Concurrency Synchronizer

Architectural Intent:
- Runs independent, identically-shaped tasks with at most ``limit`` in flight
- Collect-all semantics: a failing task never cancels its siblings
- Every task yields exactly one outcome callback

Used for per-image registry sync and for dispatching the steps of one
execution level. It has no notion of ordering and must not be used for
tasks with data dependencies between them.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from keystone.application.orchestration.calls import call_blocking_or_async
from keystone.domain.errors import AggregateSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 5


@dataclass(frozen=True)
class SyncTask(Generic[T]):
    index: int
    payload: T


@dataclass(frozen=True)
class SyncOutcome(Generic[T]):
    index: int
    payload: T
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def tasks_from(payloads: Iterable[T]) -> list[SyncTask[T]]:
    return [SyncTask(index, payload) for index, payload in enumerate(payloads)]


async def run_all(
    tasks: Iterable[SyncTask[T]],
    worker: Callable[[SyncTask[T]], Any],
    limit: int = DEFAULT_LIMIT,
    on_result: Optional[Callable[[SyncOutcome[T]], None]] = None,
) -> list[SyncOutcome[T]]:
    """Run ``worker`` over every task, at most ``limit`` at a time.

    Blocks until every task has finished. Outcomes are returned in task
    order; ``on_result`` is called in completion order.

    Raises:
        AggregateSyncError: one or more workers raised. Carries every
            failing outcome.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)

    async def _run_one(task: SyncTask[T]) -> SyncOutcome[T]:
        async with semaphore:
            try:
                await call_blocking_or_async(worker, task)
                outcome = SyncOutcome(task.index, task.payload)
            except Exception as exc:
                outcome = SyncOutcome(task.index, task.payload, exc)
        if on_result is not None:
            try:
                on_result(outcome)
            except Exception:
                logger.exception("Result callback failed for task %d", task.index)
        return outcome

    outcomes = list(await asyncio.gather(*(_run_one(t) for t in tasks)))
    failures = [o for o in outcomes if not o.ok]
    if failures:
        raise AggregateSyncError(failures)
    return outcomes
