"""Tests for the state dashboard."""

import pytest
from textual.widgets import DataTable

from keystone.domain.entities.install_state import InstallState, StepState
from keystone.infrastructure.repositories.json_state_store import JsonStateStore
from keystone.presentation.tui.dashboard import StateDashboard


def _state():
    state = InstallState(run_id="install")
    state.record(StepState("setup").start().complete())
    state.record(StepState("deploy").start())
    return state


class TestStateDashboard:
    @pytest.mark.asyncio
    async def test_shows_saved_steps(self, tmp_path):
        path = tmp_path / "state.json"
        await JsonStateStore(path).save(_state())

        app = StateDashboard(str(path), refresh_interval=60)
        async with app.run_test():
            await app.action_refresh()
            table = app.query_one(DataTable)
            assert table.row_count == 2
            assert app.sub_title == "run 'install': running"

    @pytest.mark.asyncio
    async def test_missing_state_file(self, tmp_path):
        app = StateDashboard(str(tmp_path / "absent.json"), refresh_interval=60)
        async with app.run_test():
            await app.action_refresh()
            assert app.query_one(DataTable).row_count == 0
            assert "no state yet" in app.sub_title

    @pytest.mark.asyncio
    async def test_status_change_is_logged(self, tmp_path):
        app = StateDashboard(str(tmp_path / "absent.json"), refresh_interval=60)
        async with app.run_test():
            state = _state()
            app.show_state(state)
            state.record(state.get("deploy").fail("helm timed out"))
            app.show_state(state)
            assert app._last_status["deploy"].value == "failed"

    @pytest.mark.asyncio
    async def test_interval_keys(self, tmp_path):
        app = StateDashboard(str(tmp_path / "absent.json"), refresh_interval=5)
        async with app.run_test():
            app.action_increase_interval()
            app.action_decrease_interval()
            app.action_decrease_interval()
            assert app._refresh_interval == 4.0
