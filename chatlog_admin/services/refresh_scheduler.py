"""
Background refresh that stays out of the operator's way.
Periodic reloads are skipped while a modal interaction is open.
"""

import asyncio
from contextlib import contextmanager
from typing import Awaitable, Callable

from chatlog_admin.models.domain import DeviceProfile
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)

MAX_MISSED_REFRESHES = 3


class InteractionTracker:
    """Counts open modal interactions (delete confirmation, detail, edit)."""

    def __init__(self):
        self._open: dict[str, int] = {}

    def begin(self, name: str) -> None:
        self._open[name] = self._open.get(name, 0) + 1

    def end(self, name: str) -> None:
        count = self._open.get(name, 0) - 1
        if count > 0:
            self._open[name] = count
        else:
            self._open.pop(name, None)

    @contextmanager
    def active(self, name: str):
        self.begin(name)
        try:
            yield
        finally:
            self.end(name)

    @property
    def in_progress(self) -> bool:
        return bool(self._open)

    @property
    def open_interactions(self) -> list[str]:
        return sorted(self._open)


class RefreshScheduler:
    """
    Runs a background refresh on a fixed interval.

    The effective interval is never shorter than the tier minimum. A tick is
    skipped when the operator is mid-interaction or the previous refresh is
    still running; after MAX_MISSED_REFRESHES skips in a row the counter
    resets. Refresh failures are logged and never surfaced.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[object]],
        interactions: InteractionTracker,
        profile: DeviceProfile,
        interval_minutes: float | None = None,
    ):
        """
        Args:
            refresh: Coroutine function performing a background reload
            interactions: Tracker of open modal interactions
            profile: Device profile providing the minimum interval
            interval_minutes: Requested interval; raised to the tier minimum
        """
        self.refresh = refresh
        self.interactions = interactions
        self.profile = profile
        self.interval_minutes = max(
            interval_minutes or 0, profile.refresh_interval_minutes
        )
        self.missed = 0
        self.completed = 0
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """
        Performs one scheduled tick.

        Returns:
            True if a refresh ran and completed, False if it was skipped or failed
        """
        if self.interactions.in_progress or self._running:
            self.missed += 1
            logger.info(
                "refresh_skipped",
                missed=self.missed,
                interactions=self.interactions.open_interactions,
                refresh_running=self._running,
            )
            if self.missed >= MAX_MISSED_REFRESHES:
                self.missed = 0
            return False

        self._running = True
        try:
            await self.refresh()
        except Exception as e:
            logger.error("background_refresh_failed", error=str(e), exc_info=True)
            return False
        finally:
            self._running = False

        self.missed = 0
        self.completed += 1
        logger.debug("background_refresh_completed", completed=self.completed)
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        """Starts the refresh loop on the running event loop."""
        if self.is_started:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "refresh_scheduler_started",
            interval_minutes=self.interval_minutes,
        )

    async def stop(self) -> None:
        """Cancels the refresh loop and waits for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("refresh_scheduler_stopped")
