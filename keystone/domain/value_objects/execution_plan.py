"""
Execution Plan

Architectural Intent:
- Immutable result of dependency analysis, computed once per run
- Levels are barriers: every dependency of a step lies in an earlier level
- Registration order is preserved inside each level
"""

from __future__ import annotations
from dataclasses import dataclass

from keystone.domain.entities.step import Step


@dataclass(frozen=True)
class ExecutionPlan:
    levels: tuple[tuple[Step, ...], ...]

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(step for level in self.levels for step in level)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps)

    def __len__(self) -> int:
        return sum(len(level) for level in self.levels)

    def level_of(self, name: str) -> int:
        for index, level in enumerate(self.levels):
            if any(step.name == name for step in level):
                return index
        raise KeyError(name)

    def as_sequential(self) -> "ExecutionPlan":
        """One step per level, in level-then-registration order."""
        return ExecutionPlan(tuple((step,) for step in self.steps))

    def transitive_dependents(self, name: str) -> frozenset[str]:
        dependents: set[str] = set()
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for step in self.steps:
                if current in step.dependencies and step.name not in dependents:
                    dependents.add(step.name)
                    frontier.append(step.name)
        return frozenset(dependents)
