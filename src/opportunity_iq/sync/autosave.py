"""Debounced auto-save of profile, compass and life-context edits."""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import structlog

from opportunity_iq.config import Settings, get_settings
from opportunity_iq.models import (
    ContextAnalysisResult,
    FinancialProfile,
    LifeContext,
    YearlyCompassData,
)
from opportunity_iq.persistence import PersistenceAdapter

logger = structlog.get_logger(__name__)


class SliceState(str, Enum):
    """Lifecycle of one watched slice of state."""

    IDLE = "idle"
    PENDING = "pending"
    FLUSHING = "flushing"


class DebouncedTask:
    """Runs an async action once a quiet period has passed without new values.

    Each ``schedule`` cancels the pending timer and starts a new one, so a
    burst of changes produces a single call with the last value. A write that
    is already flushing is never cancelled. Writes run one at a time in the
    order they were flushed, so an older value never lands after a newer one.
    """

    def __init__(
        self,
        name: str,
        delay: float,
        action: Callable[[Any], Awaitable[Any]],
    ):
        self.name = name
        self.delay = delay
        self._action = action
        self._timer: asyncio.Task[None] | None = None
        self._pending_value: Any = None
        self._flushing: set[asyncio.Task[None]] = set()
        self._write_lock = asyncio.Lock()
        self._logger = logger.bind(slice=name)

    @property
    def state(self) -> SliceState:
        if self._timer is not None and not self._timer.done():
            return SliceState.PENDING
        if self._flushing:
            return SliceState.FLUSHING
        return SliceState.IDLE

    def schedule(self, value: Any) -> None:
        """Replace any pending value and restart the quiet period."""
        self.cancel()
        self._pending_value = value
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_flush())

    def cancel(self) -> None:
        """Drop the pending value, if any."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            self._logger.debug("autosave_rescheduled")
        self._timer = None

    async def _wait_then_flush(self) -> None:
        await asyncio.sleep(self.delay)
        value = self._pending_value
        self._pending_value = None
        # Detach the write so a later cancel() cannot interrupt it
        flush = asyncio.get_running_loop().create_task(self._run(value))
        self._flushing.add(flush)
        flush.add_done_callback(self._flushing.discard)

    async def _run(self, value: Any) -> None:
        async with self._write_lock:
            try:
                await self._action(value)
            except Exception as e:
                self._logger.error("autosave_failed", error=str(e))

    async def flush(self) -> None:
        """Write the pending value now instead of waiting for the timer."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            self._timer = None
            value = self._pending_value
            self._pending_value = None
            await self._run(value)
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for the pending timer (if any) and every in-flight write."""
        if self._timer is not None and not self._timer.done():
            await asyncio.wait({self._timer})
        while self._flushing:
            in_flight = list(self._flushing)
            await asyncio.gather(*in_flight, return_exceptions=True)
            self._flushing.difference_update(in_flight)


class AutoSaveController:
    """Persists watched slices after a quiet window.

    Writes are gated: nothing is scheduled while the initial load is in
    flight or while no user is signed in, so freshly loaded data is never
    overwritten with defaults. Failed writes are logged and not retried.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        settings: Settings | None = None,
        profile_delay: float | None = None,
        compass_delay: float | None = None,
        context_delay: float | None = None,
    ):
        settings = settings or get_settings()
        self._adapter = adapter
        self._user_id: str | None = None
        self._loading = False

        self.profile = DebouncedTask(
            "profile",
            profile_delay if profile_delay is not None else settings.profile_debounce_seconds,
            self._save_profile,
        )
        self.compass = DebouncedTask(
            "compass",
            compass_delay if compass_delay is not None else settings.compass_debounce_seconds,
            self._save_compass,
        )
        self.context = DebouncedTask(
            "context",
            context_delay if context_delay is not None else settings.context_debounce_seconds,
            self._save_context,
        )
        self._logger = logger.bind(component="autosave")

    @property
    def slices(self) -> tuple[DebouncedTask, DebouncedTask, DebouncedTask]:
        return (self.profile, self.compass, self.context)

    @property
    def is_active(self) -> bool:
        """Whether edits are currently persisted."""
        return self._user_id is not None and not self._loading

    def set_user(self, user_id: str | None) -> None:
        if user_id != self._user_id:
            # Pending edits belong to the previous user
            self.cancel_all()
        self._user_id = user_id

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        if loading:
            self.cancel_all()

    # === Change notifications ===

    def profile_changed(self, profile: FinancialProfile) -> bool:
        return self._schedule(self.profile, profile)

    def compass_changed(self, compass: YearlyCompassData) -> bool:
        return self._schedule(self.compass, compass)

    def context_changed(
        self, context: LifeContext, analysis: ContextAnalysisResult | None = None
    ) -> bool:
        return self._schedule(self.context, (context, analysis))

    def _schedule(self, task: DebouncedTask, value: Any) -> bool:
        if not self.is_active:
            self._logger.debug(
                "autosave_gated",
                slice=task.name,
                signed_in=self._user_id is not None,
                loading=self._loading,
            )
            return False
        task.schedule((self._user_id, value))
        return True

    # === Writers ===

    async def _save_profile(self, payload: tuple[str, FinancialProfile]) -> None:
        user_id, profile = payload
        status = await self._adapter.save_profile(user_id, profile)
        self._logger.debug("profile_saved", user_id=user_id, status=status.value)

    async def _save_compass(self, payload: tuple[str, YearlyCompassData]) -> None:
        user_id, compass = payload
        status = await self._adapter.save_compass(user_id, compass)
        self._logger.debug("compass_saved", user_id=user_id, status=status.value)

    async def _save_context(
        self, payload: tuple[str, tuple[LifeContext, ContextAnalysisResult | None]]
    ) -> None:
        user_id, (context, analysis) = payload
        status = await self._adapter.save_context(user_id, context, analysis)
        self._logger.debug("context_saved", user_id=user_id, status=status.value)

    # === Lifecycle ===

    def cancel_all(self) -> None:
        for task in self.slices:
            task.cancel()

    async def flush(self) -> None:
        """Write every pending slice immediately."""
        for task in self.slices:
            await task.flush()

    async def wait_idle(self) -> None:
        for task in self.slices:
            await task.wait_idle()

    async def close(self) -> None:
        """Cancel pending timers unconditionally and wait for in-flight writes."""
        self.cancel_all()
        for task in self.slices:
            await task.wait_idle()
