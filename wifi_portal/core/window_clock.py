"""
Countdown sampling for access windows.

``sample`` is pure: it turns a window and an instant into the remaining
seconds and a countdown percentage (100 = just started, 0 = expired).
``WindowTicker`` re-samples on a fixed cadence for live displays and must
be stopped when the window is cleared, superseded or nobody is watching.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union
import asyncio
import inspect
import logging
import math

from wifi_portal.core.access_window import AccessWindow, Clock, ensure_aware, utcnow
from wifi_portal.core.errors import MalformedWindowError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockSample:
    remaining_seconds: int
    progress_percent: float

    def to_dict(self) -> dict:
        return {
            "remaining_seconds": self.remaining_seconds,
            "progress_percent": self.progress_percent,
            "remaining_human": format_remaining(self.remaining_seconds),
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def sample(window: AccessWindow, now: datetime) -> ClockSample:
    total = (window.end_time - window.start_time).total_seconds()
    if total <= 0:
        raise MalformedWindowError(
            f"Window for package {window.package_id} ends at {window.end_time.isoformat()} "
            f"which is not after its start {window.start_time.isoformat()}"
        )
    now = ensure_aware(now)
    remaining = max(0, math.floor((window.end_time - now).total_seconds()))
    elapsed_fraction = _clamp((now - window.start_time).total_seconds() / total, 0.0, 1.0)
    progress = _clamp((1.0 - elapsed_fraction) * 100.0, 0.0, 100.0)
    return ClockSample(remaining_seconds=remaining, progress_percent=progress)


def format_remaining(seconds: int) -> str:
    """HH:MM:SS, hours are not wrapped at 24."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


SampleCallback = Callable[[ClockSample], Union[None, Awaitable[None]]]


class WindowTicker:
    def __init__(
        self,
        window: AccessWindow,
        on_sample: SampleCallback,
        interval: float = 1.0,
        clock: Clock = utcnow,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.window = window
        self.on_sample = on_sample
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "WindowTicker":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    async def _run(self):
        while True:
            current = sample(self.window, self.clock())
            result = self.on_sample(current)
            if inspect.isawaitable(result):
                await result
            if current.remaining_seconds == 0:
                logger.debug(f"Ticker for package {self.window.package_id} reached expiry")
                return
            await asyncio.sleep(self.interval)

    async def wait(self):
        """Wait until the ticker ends; re-raises a callback failure."""
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled() and self._task.exception() is not None:
            raise self._task.exception()

    async def stop(self):
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        if self._task is asyncio.current_task():
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
