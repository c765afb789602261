"""Tests for the bounded-concurrency synchronizer."""

import asyncio
import threading

import pytest

from keystone.application.orchestration.synchronizer import (
    SyncTask,
    run_all,
    tasks_from,
)
from keystone.domain.errors import AggregateSyncError


class TestRunAll:
    @pytest.mark.asyncio
    async def test_at_most_limit_in_flight(self):
        in_flight = 0
        peak = 0

        async def worker(task):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await run_all(tasks_from(range(20)), worker, limit=3)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_limit_holds_for_blocking_workers(self):
        lock = threading.Lock()
        in_flight = 0
        peak = 0
        release = threading.Event()

        def worker(task):
            nonlocal in_flight, peak
            with lock:
                in_flight += 1
                peak = max(peak, in_flight)
            release.wait(0.05)
            with lock:
                in_flight -= 1

        await run_all(tasks_from(range(8)), worker, limit=2)
        assert 1 <= peak <= 2

    @pytest.mark.asyncio
    async def test_one_outcome_per_task_in_task_order(self):
        seen = []

        async def worker(task):
            await asyncio.sleep(0.001 * (5 - task.index))

        outcomes = await run_all(
            tasks_from("abcde"), worker, limit=5, on_result=seen.append
        )
        assert [o.index for o in outcomes] == [0, 1, 2, 3, 4]
        assert sorted(o.index for o in seen) == [0, 1, 2, 3, 4]
        assert all(o.ok for o in outcomes)

    @pytest.mark.asyncio
    async def test_collects_every_failure_without_cancelling_siblings(self):
        finished = []
        seen = []

        async def worker(task):
            if task.payload % 2:
                raise RuntimeError(f"task {task.payload} failed")
            await asyncio.sleep(0.005)
            finished.append(task.payload)

        with pytest.raises(AggregateSyncError) as exc_info:
            await run_all(tasks_from(range(6)), worker, limit=2, on_result=seen.append)

        assert sorted(finished) == [0, 2, 4]
        assert len(seen) == 6
        failures = exc_info.value.outcomes
        assert sorted(o.payload for o in failures) == [1, 3, 5]
        assert "3 task(s) failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_the_run(self, caplog):
        def callback(outcome):
            raise ValueError("reporter broke")

        async def worker(task):
            return None

        outcomes = await run_all(tasks_from([1, 2]), worker, on_result=callback)
        assert len(outcomes) == 2
        assert "Result callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_task_list(self):
        async def worker(task):
            raise AssertionError("never called")

        assert await run_all([], worker) == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self):
        async def worker(task):
            return None

        with pytest.raises(ValueError):
            await run_all([SyncTask(0, "x")], worker, limit=0)
