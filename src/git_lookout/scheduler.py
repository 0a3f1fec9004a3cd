import asyncio
import datetime
import logging

from .config import parse_time
from .constants import APP_NAME
from .fetch import FetchCoordinator, FetchOperation, FetchStatus

logger = logging.getLogger(APP_NAME)


class Scheduler:
    """Re-arming timer that drives automatic update checks.

    Starts disabled. While enabled there is at most one pending timer: each cycle
    waits `interval` seconds, runs one fetch, and arms the next wait once that fetch
    has finished, whatever its outcome. `disable()` cancels the pending wait but lets
    an in-flight fetch run to completion without re-arming.

    Attributes:
        coordinator (FetchCoordinator): Runs the fetch for each cycle.
        loop (asyncio.AbstractEventLoop): Provides `call_later`.
    """

    def __init__(
        self,
        coordinator: FetchCoordinator,
        loop: asyncio.AbstractEventLoop,
        interval: int | float | str | datetime.timedelta,
    ):
        self.coordinator = coordinator
        self.loop = loop
        self._interval = parse_time(interval)
        self._enabled = False
        self._handle: asyncio.TimerHandle | None = None
        self.cycles = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def interval(self) -> float:
        """Seconds between automatic checks."""
        return self._interval

    @interval.setter
    def interval(self, value: int | float | str | datetime.timedelta) -> None:
        self._interval = parse_time(value)
        if self._enabled and self._handle is not None:
            self._cancel()
            self._arm()

    @property
    def pending(self) -> bool:
        """Whether a wait for the next cycle is currently armed."""
        return self._handle is not None

    def enable(self) -> None:
        """Turns on automatic checking. Enabling twice keeps a single timer."""
        if self._enabled:
            return
        self._enabled = True
        logger.info(f"Automatic checks enabled (every {self._interval:g}s).")
        if self._handle is None:
            self._arm()

    def disable(self) -> None:
        """Turns off automatic checking and cancels the pending wait."""
        if not self._enabled and self._handle is None:
            return
        self._enabled = False
        self._cancel()
        logger.info("Automatic checks disabled.")

    def _arm(self) -> None:
        self._handle = self.loop.call_later(self._interval, self._fire)

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if not self._enabled:
            return

        self.cycles += 1
        op = self.coordinator.check_for_updates(on_done=self._cycle_done)
        if op is None:
            # A manual check is still running; try again next interval.
            self._arm()

    def _cycle_done(self, op: FetchOperation) -> None:
        if op.status is FetchStatus.FAILED:
            logger.debug(f"Automatic check failed: {op.error}")
        if self._enabled and self._handle is None:
            self._arm()
