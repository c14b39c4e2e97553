"""Timers feature module"""

from app.features.timers.domain import (
    TIMER_PRESETS,
    Timer,
    TimerAction,
    TimerCreate,
    TimerState,
    TimerUpdate,
    calculate_end_time,
    calculate_remaining_seconds,
    get_progress,
    sync_timer_state,
)

__all__ = [
    "TIMER_PRESETS",
    "Timer",
    "TimerAction",
    "TimerCreate",
    "TimerState",
    "TimerUpdate",
    "calculate_end_time",
    "calculate_remaining_seconds",
    "get_progress",
    "sync_timer_state",
]
