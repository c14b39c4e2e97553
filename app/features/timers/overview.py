"""Multi-timer overview widget"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from app import config
from app.features.timers.domain import (
    Timer,
    TimerState,
    calculate_end_time,
    calculate_remaining_seconds,
    get_progress,
)
from app.features.timers.formatting import format_end_time, format_time
from app.features.timers.schemas import OverviewRow, OverviewSnapshot, TimerErrorKind
from app.features.timers.service import TimerService

logger = logging.getLogger(__name__)

STATE_PRIORITY: Dict[TimerState, int] = {
    TimerState.RUNNING: 0,
    TimerState.PAUSED: 1,
    TimerState.STOPPED: 2,
    TimerState.COMPLETED: 3,
}


def sort_timers(timers: List[Timer], remaining: Optional[Mapping[str, int]] = None) -> List[Timer]:
    """Running first, then paused, stopped, completed; least time left first within a state"""
    remaining = remaining or {}
    return sorted(
        timers,
        key=lambda t: (STATE_PRIORITY[t.state], remaining.get(t.id, t.remaining_seconds)),
    )


def remaining_from_end_times(
    timers: List[Timer],
    previous: Mapping[str, int],
    now: datetime,
) -> Dict[str, int]:
    """Recompute remaining seconds of running timers from their deadlines"""
    updated = dict(previous)
    for timer in timers:
        remaining = calculate_remaining_seconds(timer.end_time, timer.state, now)
        if remaining is not None:
            updated[timer.id] = remaining
    return updated


def more_label(hidden_count: int) -> Optional[str]:
    if hidden_count <= 0:
        return None
    return f"+{hidden_count} more timer{'s' if hidden_count != 1 else ''}"


class TimersOverview:
    """
    Summary of all of a user's timers.

    Keeps its own remaining-time map, recomputed every tick from each
    running timer's end_time, and reloads the list from the service on a
    fixed interval. It does not share state with TimerCountdown instances.
    """

    def __init__(
        self,
        service: TimerService,
        max_visible: Optional[int] = None,
        refresh_seconds: Optional[float] = None,
        tick_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.service = service
        self.max_visible = max_visible if max_visible is not None else config.TIMER_OVERVIEW_MAX_VISIBLE
        self.refresh_seconds = refresh_seconds if refresh_seconds is not None else config.TIMER_OVERVIEW_REFRESH_SECONDS
        self.tick_seconds = tick_seconds if tick_seconds is not None else config.TIMER_TICK_SECONDS
        self._clock = clock or service.now

        self.timers: List[Timer] = []
        self.remaining: Dict[str, int] = {}
        self.loading = True
        self.error: Optional[str] = None
        self.error_kind: Optional[TimerErrorKind] = None

        self._refresh_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    async def load(self) -> None:
        """Pull the authoritative list"""
        result = await self.service.list_timers()

        self.error_kind = result.error_kind
        if result.error:
            self.error = result.error
        else:
            self.error = None
            self.timers = result.timers
            self.remaining = {t.id: t.remaining_seconds for t in result.timers}

        self.loading = False

    def tick(self) -> None:
        if not any(t.state == TimerState.RUNNING and t.end_time for t in self.timers):
            return
        self.remaining = remaining_from_end_times(self.timers, self.remaining, self._clock())

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def mount(self) -> None:
        loop = asyncio.get_running_loop()
        if self._refresh_task is None:
            self._refresh_task = loop.create_task(self._refresh_loop())
        if self._tick_task is None:
            self._tick_task = loop.create_task(self._tick_loop())

    def unmount(self) -> None:
        for task in (self._refresh_task, self._tick_task):
            if task is not None and not task.done():
                task.cancel()
        self._refresh_task = None
        self._tick_task = None

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.load()
            except Exception as e:
                logger.error(f"Timers overview refresh failed: {e}")
            await asyncio.sleep(self.refresh_seconds)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self.tick()

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    @property
    def count(self) -> int:
        return len(self.timers)

    @property
    def is_empty(self) -> bool:
        return not self.loading and not self.timers and self.error is None

    @property
    def hidden_count(self) -> int:
        return max(0, len(self.timers) - self.max_visible)

    def remaining_for(self, timer: Timer) -> int:
        return self.remaining.get(timer.id, timer.remaining_seconds)

    @property
    def rows(self) -> List[OverviewRow]:
        now = self._clock()
        visible = sort_timers(self.timers, self.remaining)[: self.max_visible]
        return [self._row(timer, now) for timer in visible]

    def _row(self, timer: Timer, now: datetime) -> OverviewRow:
        remaining = self.remaining_for(timer)
        end_time_label = None
        if timer.state == TimerState.RUNNING and remaining > 0:
            end_time_label = format_end_time(calculate_end_time(remaining, now), TimerState.RUNNING, now=now)

        return OverviewRow(
            timer=timer,
            remaining_seconds=remaining,
            display_time=format_time(remaining),
            progress=get_progress(timer, remaining),
            end_time_label=end_time_label,
            dimmed=timer.state == TimerState.COMPLETED,
        )

    def snapshot(self) -> OverviewSnapshot:
        hidden = self.hidden_count
        return OverviewSnapshot(
            rows=self.rows,
            count=self.count,
            hidden_count=hidden,
            more_label=more_label(hidden),
            error=self.error,
        )
