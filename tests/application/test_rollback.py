"""
Rollback Coordinator Tests

Architectural Intent:
- Reverse completion order, exactly-once compensation
- Compensation failures are collected, never re-raised
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from keystone.application.orchestration.rollback import RollbackCoordinator
from keystone.domain.entities.step import Step, StepContext


def _context_for(step):
    return StepContext(step.name)


class TestRollbackCoordinator:
    @pytest.mark.asyncio
    async def test_reverse_order_exactly_once(self):
        calls = []
        steps = [
            Step("a", "A", lambda: None, compensate=lambda: calls.append("a")),
            Step("b", "B", lambda: None, {"a"}, compensate=lambda: calls.append("b")),
        ]

        report = await RollbackCoordinator().rollback(steps, _context_for)

        assert calls == ["b", "a"]
        assert report.rolled_back == ["b", "a"]
        assert report.succeeded

    @pytest.mark.asyncio
    async def test_steps_without_compensation_are_listed(self):
        steps = [
            Step("a", "A", lambda: None),
            Step("b", "B", lambda: None, compensate=MagicMock()),
        ]
        report = await RollbackCoordinator().rollback(steps, _context_for)
        assert report.rolled_back == ["b"]
        assert report.without_compensation == ["a"]

    @pytest.mark.asyncio
    async def test_failure_is_collected_and_walk_continues(self):
        calls = []

        def broken():
            raise RuntimeError("namespace stuck terminating")

        steps = [
            Step("a", "A", lambda: None, compensate=lambda: calls.append("a")),
            Step("b", "B", lambda: None, compensate=broken),
            Step("c", "C", lambda: None, compensate=lambda: calls.append("c")),
        ]

        report = await RollbackCoordinator().rollback(steps, _context_for)

        assert calls == ["c", "a"]
        assert report.rolled_back == ["c", "a"]
        assert not report.succeeded
        assert report.failures[0].step_name == "b"
        assert "namespace stuck" in str(report.failures[0])

    @pytest.mark.asyncio
    async def test_async_compensation_receives_context(self):
        compensate = AsyncMock()
        step = Step("deploy", "Deploy", lambda: None, compensate=compensate)

        await RollbackCoordinator().rollback([step], _context_for)

        compensate.assert_awaited_once()
        ctx = compensate.await_args.args[0]
        assert ctx.step_name == "deploy"

    @pytest.mark.asyncio
    async def test_nothing_to_roll_back(self):
        report = await RollbackCoordinator().rollback([], _context_for)
        assert report.rolled_back == []
        assert report.succeeded
