"""Live countdown for a single timer"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from app import config
from app.features.timers.domain import Timer, TimerState, edit_update, get_progress
from app.features.timers.events import TimerCompleted, TimerEventChannel
from app.features.timers.formatting import format_time, parse_time
from app.features.timers.service import TimerService

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[], Union[None, Awaitable[None]]]
ConfirmCallback = Callable[[str], bool]


class TimerCountdown:
    """
    Per-second local countdown for one timer card.

    local_remaining mirrors the timer's remaining_seconds. It is seeded from
    each snapshot passed to receive() and decremented by a one-second tick
    while the timer runs. When it reaches zero the timer is marked completed,
    a TimerCompleted event is published and on_update is called, exactly once
    per run.

    Other views of the same timer keep their own clocks; they converge when
    each one reloads from the service.
    """

    def __init__(
        self,
        timer: Timer,
        service: TimerService,
        events: TimerEventChannel,
        on_update: Optional[UpdateCallback] = None,
        tick_seconds: Optional[float] = None,
    ):
        self.timer = timer
        self.service = service
        self.events = events
        self.on_update = on_update
        self.tick_seconds = tick_seconds if tick_seconds is not None else config.TIMER_TICK_SECONDS

        self.local_remaining = timer.remaining_seconds
        self.is_editing = False
        self.edit_value = ""
        self.is_deleting = False

        self._has_completed = False
        self._mounted = False
        self._tick_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Snapshots and ticking
    # ------------------------------------------------------------------

    def receive(self, timer: Timer) -> None:
        """Re-seed from a fresh server snapshot"""
        self.timer = timer
        self.local_remaining = timer.remaining_seconds
        if timer.state != TimerState.COMPLETED and timer.remaining_seconds > 0:
            self._has_completed = False
        self._sync_ticking()

    def mount(self) -> None:
        self._mounted = True
        self._sync_ticking()

    def unmount(self) -> None:
        """Stop this countdown's tick; mutations already sent keep going"""
        self._mounted = False
        self._stop_ticking()

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def _should_tick(self) -> bool:
        return self._mounted and self.timer.state == TimerState.RUNNING and not self._has_completed

    def _sync_ticking(self) -> None:
        if self._should_tick():
            if not self.is_ticking:
                self._tick_task = asyncio.get_running_loop().create_task(self._run())
        else:
            self._stop_ticking()

    def _stop_ticking(self) -> None:
        task = self._tick_task
        self._tick_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        this_task = asyncio.current_task()
        while self._should_tick() and self._tick_task is this_task:
            await asyncio.sleep(self.tick_seconds)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Countdown tick failed for timer {self.timer.id}: {e}")

    async def tick(self) -> None:
        """One second elapsed"""
        if self.timer.state != TimerState.RUNNING:
            return

        self.local_remaining = max(0, self.local_remaining - 1)
        if self.local_remaining == 0:
            await self._handle_complete()

    async def _handle_complete(self) -> None:
        if self._has_completed:
            return
        self._has_completed = True

        result = await self.service.complete_timer(self.timer.id)
        if not result.success:
            logger.warning(f"Failed to record completion of timer {self.timer.id}: {result.error}")

        # Another view already recorded and announced this completion
        if not result.already_completed:
            await self.events.publish(TimerCompleted(timer=self.timer))
        await self._notify_update()

    async def _notify_update(self) -> None:
        if self.on_update is None:
            return
        result = self.on_update()
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def start(self) -> None:
        result = await self.service.start_timer(self.timer.id)
        if not result.success:
            logger.warning(f"Failed to start timer {self.timer.id}: {result.error}")
        await self._notify_update()

    async def pause(self) -> None:
        # Send what this view counted down to, not a server-side recomputation
        result = await self.service.pause_timer(self.timer.id, self.local_remaining)
        if not result.success:
            logger.warning(f"Failed to pause timer {self.timer.id}: {result.error}")
        await self._notify_update()

    async def reset(self) -> None:
        result = await self.service.reset_timer(self.timer.id)
        if not result.success:
            logger.warning(f"Failed to reset timer {self.timer.id}: {result.error}")
        await self._notify_update()

    async def delete(self, confirm: ConfirmCallback) -> bool:
        """Delete after confirmation; the control stays disabled while the call runs"""
        if not confirm(f'Delete timer "{self.timer.name}"?'):
            return False

        self.is_deleting = True
        try:
            result = await self.service.delete_timer(self.timer.id)
            if not result.success:
                logger.warning(f"Failed to delete timer {self.timer.id}: {result.error}")
                return False
            await self._notify_update()
            return True
        except Exception as e:
            logger.warning(f"Failed to delete timer {self.timer.id}: {e}")
            return False
        finally:
            self.is_deleting = False

    # ------------------------------------------------------------------
    # Inline duration editor
    # ------------------------------------------------------------------

    @property
    def is_editable(self) -> bool:
        return self.timer.state != TimerState.RUNNING

    def activate(self) -> bool:
        """Open the editor (click on the time display)"""
        if not self.is_editable:
            return False
        self.edit_value = format_time(self.local_remaining)
        self.is_editing = True
        return True

    def handle_display_key(self, key: str) -> bool:
        if key in ("Enter", " "):
            return self.activate()
        return False

    def set_edit_value(self, value: str) -> None:
        self.edit_value = value

    def cancel_edit(self) -> None:
        self.is_editing = False

    async def handle_edit_key(self, key: str) -> None:
        if key == "Enter":
            await self.blur()
        elif key == "Escape":
            self.cancel_edit()

    async def blur(self) -> bool:
        """Leave the editor, saving a valid changed value"""
        if not self.is_editing:
            return False

        seconds = parse_time(self.edit_value)
        self.is_editing = False

        if seconds is None or seconds == self.local_remaining:
            return False

        # The edited value becomes the new duration so Reset returns to it
        update = edit_update(seconds)
        result = await self.service.update_timer(self.timer.id, update)
        if not result.success:
            logger.warning(f"Failed to change duration of timer {self.timer.id}: {result.error}")
            return False

        self.timer = self.timer.model_copy(update=update.model_dump(exclude_unset=True))
        self.local_remaining = seconds
        self._has_completed = False
        await self._notify_update()
        return True

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    @property
    def display_time(self) -> str:
        return format_time(self.local_remaining)

    @property
    def duration_label(self) -> str:
        return f"{format_time(self.timer.duration_seconds)} timer"

    @property
    def progress(self) -> float:
        return get_progress(self.timer, self.local_remaining)

    @property
    def is_completed(self) -> bool:
        return self.local_remaining == 0

    @property
    def display_color(self) -> Optional[str]:
        if self.is_completed and self.timer.enable_completion_color:
            return self.timer.completion_color
        return None

    @property
    def can_start(self) -> bool:
        return self.timer.state != TimerState.RUNNING and self.local_remaining > 0

    @property
    def start_label(self) -> str:
        return "Resume" if self.timer.state == TimerState.PAUSED else "Start"
