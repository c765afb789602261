"""
Dependency Graph Service

Architectural Intent:
- Validates a step set and turns it into an ExecutionPlan
- Cycle detection runs before levelling so no partial plan is ever produced
- Step filtering happens here, before the graph is built

Algorithm:
1. Reject duplicate names and dependencies on unknown steps
2. Depth-first traversal with visiting/visited colouring; reaching a
   step that is still "visiting" reports the cycle path
3. Kahn's algorithm: each round removes every zero in-degree step and
   those removals form one level (registration order kept)
"""

from __future__ import annotations
import logging
from enum import Enum, auto
from typing import Iterable, Sequence

from keystone.domain.entities.step import Step
from keystone.domain.errors import (
    DependencyCycleError,
    DuplicateStepError,
    UnknownDependencyError,
)
from keystone.domain.value_objects.execution_plan import ExecutionPlan

logger = logging.getLogger(__name__)


class _Colour(Enum):
    WHITE = auto()
    GREY = auto()
    BLACK = auto()


def _index(steps: Sequence[Step]) -> dict[str, Step]:
    by_name: dict[str, Step] = {}
    for step in steps:
        if step.name in by_name:
            raise DuplicateStepError(step.name)
        by_name[step.name] = step
    return by_name


def _find_cycle(by_name: dict[str, Step], satisfied: frozenset[str]) -> list[str] | None:
    colour = {name: _Colour.WHITE for name in by_name}
    path: list[str] = []

    def visit(name: str) -> list[str] | None:
        colour[name] = _Colour.GREY
        path.append(name)
        for dep in sorted(by_name[name].dependencies - satisfied):
            if colour[dep] == _Colour.GREY:
                return path[path.index(dep):] + [dep]
            if colour[dep] == _Colour.WHITE:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        colour[name] = _Colour.BLACK
        return None

    for name in by_name:
        if colour[name] == _Colour.WHITE:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


def build_plan(
    steps: Sequence[Step], assume_satisfied: Iterable[str] = ()
) -> ExecutionPlan:
    """Validate ``steps`` and compute execution levels.

    Args:
        steps: Steps in registration order.
        assume_satisfied: Dependency names that are not part of this step
            set but count as already met (steps removed by filtering).

    Raises:
        DuplicateStepError, UnknownDependencyError, DependencyCycleError
    """
    by_name = _index(steps)
    satisfied = frozenset(assume_satisfied) - by_name.keys()

    for step in steps:
        missing = sorted(step.dependencies - by_name.keys() - satisfied)
        if missing:
            raise UnknownDependencyError(step.name, missing)

    cycle = _find_cycle(by_name, satisfied)
    if cycle:
        raise DependencyCycleError(cycle)

    in_degree = {s.name: len(s.dependencies - satisfied) for s in steps}
    remaining = list(steps)
    levels: list[tuple[Step, ...]] = []

    while remaining:
        level = tuple(s for s in remaining if in_degree[s.name] == 0)
        if not level:
            # Unreachable after the DFS check; kept as a guard for the invariant.
            raise DependencyCycleError([s.name for s in remaining])
        levels.append(level)
        removed = {s.name for s in level}
        remaining = [s for s in remaining if s.name not in removed]
        for step in remaining:
            in_degree[step.name] -= len(step.dependencies & removed)

    return ExecutionPlan(tuple(levels))


def filter_steps(
    steps: Sequence[Step],
    skip: Iterable[str] = (),
    only: Iterable[str] = (),
) -> tuple[list[Step], frozenset[str]]:
    """Apply --steps-only / --skip-steps before graph construction.

    Returns the surviving steps and the names that were removed. Removed
    names are meant to be passed to ``build_plan`` as ``assume_satisfied``.

    Raises:
        ValueError: a filter names a step that is not registered, or both
            filters are given.
    """
    skip_set, only_set = frozenset(skip), frozenset(only)
    if skip_set and only_set:
        raise ValueError("--skip-steps and --steps-only are mutually exclusive")

    known = {s.name for s in steps}
    unknown = sorted((skip_set | only_set) - known)
    if unknown:
        raise ValueError(f"Unknown step(s): {', '.join(unknown)}")

    if only_set:
        kept = [s for s in steps if s.name in only_set]
    else:
        kept = [s for s in steps if s.name not in skip_set]

    removed = frozenset(known - {s.name for s in kept})
    for step in kept:
        dangling = sorted(step.dependencies & removed)
        if dangling:
            logger.warning(
                "Step '%s' depends on filtered-out step(s) %s; treating them as satisfied",
                step.name,
                ", ".join(dangling),
            )
    return kept, removed
