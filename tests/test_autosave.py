"""Tests for the debounced auto-save controller."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from opportunity_iq.models import (
    AnalysisCoordinates,
    ContextAnalysisResult,
    FinancialProfile,
    LifeContext,
    YearlyCompassData,
)
from opportunity_iq.persistence import PersistenceError, SaveStatus
from opportunity_iq.sync import AutoSaveController, DebouncedTask, SliceState

DELAY = 0.05


@pytest.fixture
def controller(mock_adapter, settings):
    controller = AutoSaveController(
        mock_adapter,
        settings,
        profile_delay=DELAY,
        compass_delay=DELAY,
        context_delay=DELAY,
    )
    controller.set_user("user-1")
    return controller


class TestDebouncedTask:
    """Tests for DebouncedTask."""

    @pytest.mark.asyncio
    async def test_burst_runs_once_with_last_value(self):
        """Test rapid schedules collapse into one call with the latest value."""
        action = AsyncMock()
        task = DebouncedTask("test", DELAY, action)

        for value in range(5):
            task.schedule(value)
            await asyncio.sleep(DELAY / 5)
        await task.wait_idle()

        action.assert_awaited_once_with(4)

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        """Test the task reports pending, then idle."""
        gate = asyncio.Event()

        async def slow(_value):
            await gate.wait()

        task = DebouncedTask("test", DELAY, slow)
        assert task.state == SliceState.IDLE

        task.schedule(1)
        assert task.state == SliceState.PENDING

        await asyncio.sleep(DELAY * 2)
        assert task.state == SliceState.FLUSHING

        gate.set()
        await task.wait_idle()
        assert task.state == SliceState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_value(self):
        """Test a cancelled value is never written."""
        action = AsyncMock()
        task = DebouncedTask("test", DELAY, action)

        task.schedule(1)
        task.cancel()
        await asyncio.sleep(DELAY * 2)

        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_flush_writes_now(self):
        """Test flush does not wait for the quiet period."""
        action = AsyncMock()
        task = DebouncedTask("test", 10.0, action)

        task.schedule("now")
        await task.flush()

        action.assert_awaited_once_with("now")

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        """Test a failed write is logged, not raised."""
        action = AsyncMock(side_effect=PersistenceError("down"))
        task = DebouncedTask("test", DELAY, action)

        task.schedule(1)
        await task.wait_idle()

        action.assert_awaited_once()
        assert task.state == SliceState.IDLE

    @pytest.mark.asyncio
    async def test_reschedule_does_not_cancel_running_write(self):
        """Test a new edit during a flush leaves the running write alone."""
        gate = asyncio.Event()
        written = []

        async def slow(value):
            await gate.wait()
            written.append(value)

        task = DebouncedTask("test", DELAY, slow)
        task.schedule("first")
        await asyncio.sleep(DELAY * 2)
        task.schedule("second")
        gate.set()
        await task.wait_idle()

        assert written == ["first", "second"]

    @pytest.mark.asyncio
    async def test_slow_write_is_not_overtaken(self):
        """Test a newer value is written after a slow older write, never before it."""
        stored = {}
        started = []

        async def save(value):
            started.append(value)
            if value == 1000:
                await asyncio.sleep(DELAY * 6)
            stored["net_income"] = value

        task = DebouncedTask("profile", DELAY, save)
        task.schedule(1000)
        await asyncio.sleep(DELAY * 2)
        task.schedule(2000)
        await task.wait_idle()

        assert started == [1000, 2000]
        assert stored["net_income"] == 2000


class TestAutoSaveController:
    """Tests for AutoSaveController."""

    @pytest.mark.asyncio
    async def test_rapid_edits_write_once(self, controller, mock_adapter):
        """Test N edits within the window produce one write of the last value."""
        for income in (1000, 2000, 3000):
            assert controller.profile_changed(FinancialProfile(net_income=income))

        await controller.wait_idle()

        mock_adapter.save_profile.assert_awaited_once_with(
            "user-1", FinancialProfile(net_income=3000)
        )

    @pytest.mark.asyncio
    async def test_edit_after_window_writes_again(self, controller, mock_adapter):
        """Test an edit after the window produces a second write."""
        controller.profile_changed(FinancialProfile(net_income=1000))
        await controller.wait_idle()
        controller.profile_changed(FinancialProfile(net_income=2000))
        await controller.wait_idle()

        assert mock_adapter.save_profile.await_count == 2

    @pytest.mark.asyncio
    async def test_slices_are_independent(self, controller, mock_adapter):
        """Test each slice writes through its own operation."""
        analysis = ContextAnalysisResult(matrix_coordinates=AnalysisCoordinates(x=1, y=2))
        controller.profile_changed(FinancialProfile(net_income=1))
        controller.compass_changed(YearlyCompassData())
        controller.context_changed(LifeContext(routine_description="r"), analysis)

        await controller.wait_idle()

        mock_adapter.save_profile.assert_awaited_once()
        mock_adapter.save_compass.assert_awaited_once()
        args = mock_adapter.save_context.await_args.args
        assert args[0] == "user-1"
        assert args[2] is analysis

    @pytest.mark.asyncio
    async def test_gated_without_user(self, mock_adapter, settings):
        """Test nothing is written while nobody is signed in."""
        controller = AutoSaveController(mock_adapter, settings, profile_delay=DELAY)

        assert not controller.profile_changed(FinancialProfile(net_income=1))
        await asyncio.sleep(DELAY * 2)

        mock_adapter.save_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gated_while_loading(self, controller, mock_adapter):
        """Test edits during the initial load are not persisted."""
        controller.set_loading(True)

        assert not controller.profile_changed(FinancialProfile())
        assert not controller.is_active

        controller.set_loading(False)
        assert controller.is_active

    @pytest.mark.asyncio
    async def test_loading_cancels_pending(self, controller, mock_adapter):
        """Test starting a load drops pending edits."""
        controller.profile_changed(FinancialProfile(net_income=1))
        controller.set_loading(True)
        await asyncio.sleep(DELAY * 2)

        mock_adapter.save_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_user_switch_cancels_pending(self, controller, mock_adapter):
        """Test pending edits of the previous user are never written."""
        controller.profile_changed(FinancialProfile(net_income=1))
        controller.set_user("user-2")
        await controller.wait_idle()

        mock_adapter.save_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_failure_does_not_stop_later_writes(self, controller, mock_adapter):
        """Test a failed write is logged and the next edit still saves."""
        mock_adapter.save_profile.side_effect = [PersistenceError("down"), SaveStatus.SAVED]

        controller.profile_changed(FinancialProfile(net_income=1))
        await controller.wait_idle()
        controller.profile_changed(FinancialProfile(net_income=2))
        await controller.wait_idle()

        assert mock_adapter.save_profile.await_count == 2
        assert mock_adapter.save_profile.await_args.args[1].net_income == 2

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self, controller, mock_adapter):
        """Test close drops edits still inside their window."""
        controller.profile_changed(FinancialProfile(net_income=1))

        await controller.close()
        await asyncio.sleep(DELAY * 2)

        mock_adapter.save_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_flush_writes_pending(self, controller, mock_adapter):
        """Test flush persists pending edits at once."""
        controller.compass_changed(YearlyCompassData())

        await controller.flush()

        mock_adapter.save_compass.assert_awaited_once()
