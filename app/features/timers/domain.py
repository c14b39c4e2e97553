"""Domain models and state machine for countdown timers"""

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

MIN_DURATION_SECONDS = 1
MAX_DURATION_SECONDS = 24 * 60 * 60
MAX_NAME_LENGTH = 100

DEFAULT_COMPLETION_COLOR = "#4CAF50"
DEFAULT_ALARM_SOUND = "default"

TIMER_PRESETS = (
    {"label": "5m", "seconds": 300},
    {"label": "15m", "seconds": 900},
    {"label": "30m", "seconds": 1800},
    {"label": "1h", "seconds": 3600},
)


class TimerState(str, Enum):
    """Timer state"""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class TimerAction(str, Enum):
    """Actions that move a timer between states"""
    START = "start"
    PAUSE = "pause"
    RESET = "reset"
    COMPLETE = "complete"
    EDIT = "edit"


# state -> {action: next state}; missing pairs are not allowed
TRANSITIONS: Dict[TimerState, Dict[TimerAction, TimerState]] = {
    TimerState.STOPPED: {
        TimerAction.START: TimerState.RUNNING,
        TimerAction.RESET: TimerState.STOPPED,
        TimerAction.EDIT: TimerState.STOPPED,
    },
    TimerState.RUNNING: {
        TimerAction.PAUSE: TimerState.PAUSED,
        TimerAction.RESET: TimerState.STOPPED,
        TimerAction.COMPLETE: TimerState.COMPLETED,
    },
    TimerState.PAUSED: {
        TimerAction.START: TimerState.RUNNING,
        TimerAction.RESET: TimerState.STOPPED,
        TimerAction.EDIT: TimerState.STOPPED,
    },
    TimerState.COMPLETED: {
        TimerAction.RESET: TimerState.STOPPED,
        TimerAction.EDIT: TimerState.STOPPED,
    },
}


class InvalidTransitionError(ValueError):
    """Raised when an action is not allowed from the current state"""

    def __init__(self, state: TimerState, action: TimerAction):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action.value} a {state.value} timer")


def can_transition(state: TimerState, action: TimerAction) -> bool:
    return action in TRANSITIONS.get(state, {})


def transition(state: TimerState, action: TimerAction) -> TimerState:
    """Return the state reached by applying action, or raise InvalidTransitionError"""
    try:
        return TRANSITIONS[state][action]
    except KeyError:
        raise InvalidTransitionError(state, action)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# MODELS
# ============================================================================


class TimerBase(BaseModel):
    """Fields shared by stored timers and creation payloads"""
    name: str
    duration_seconds: int
    enable_completion_color: bool = True
    completion_color: str = DEFAULT_COMPLETION_COLOR
    enable_alarm: bool = True
    alarm_sound: str = DEFAULT_ALARM_SOUND


class TimerCreate(TimerBase):
    """Row inserted for a new timer"""
    user_id: str
    remaining_seconds: int
    state: TimerState = TimerState.STOPPED
    display_order: int = 0


class TimerUpdate(BaseModel):
    """Timer update model - only fields that are set get written"""
    name: Optional[str] = None
    duration_seconds: Optional[int] = None
    remaining_seconds: Optional[int] = None
    state: Optional[TimerState] = None
    end_time: Optional[datetime] = None
    enable_completion_color: Optional[bool] = None
    completion_color: Optional[str] = None
    enable_alarm: Optional[bool] = None
    alarm_sound: Optional[str] = None
    display_order: Optional[int] = None


class Timer(TimerBase):
    """Complete timer model from database"""
    id: str
    user_id: str
    remaining_seconds: int
    state: TimerState = TimerState.STOPPED
    end_time: Optional[datetime] = None
    display_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("end_time", mode="before")
    @classmethod
    def _parse_end_time(cls, value: Any) -> Optional[datetime]:
        # An unreadable deadline is treated as absent
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, str):
            try:
                return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
            except ValueError:
                return None
        return None

    class Config:
        from_attributes = True


# ============================================================================
# RECONCILIATION
# ============================================================================


def calculate_remaining_seconds(
    end_time: Optional[datetime],
    state: TimerState,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """
    Seconds left until end_time for a running timer.

    Returns None when the timer is not running or has no deadline.
    """
    if end_time is None or state != TimerState.RUNNING:
        return None

    now = now or utc_now()
    remaining = math.floor((ensure_utc(end_time) - now).total_seconds())
    return max(0, remaining)


def sync_timer_state(timer: Timer, now: Optional[datetime] = None) -> Timer:
    """
    Reconcile a stored timer against its deadline.

    The remaining_seconds stored for a running timer is only the value from
    its last write; end_time is authoritative. A running timer whose deadline
    has passed comes back completed.
    """
    if timer.state != TimerState.RUNNING or timer.end_time is None:
        return timer

    remaining = calculate_remaining_seconds(timer.end_time, timer.state, now)
    if remaining is None:
        return timer

    if remaining == 0:
        return timer.model_copy(update={
            "state": TimerState.COMPLETED,
            "remaining_seconds": 0,
            "end_time": None,
        })

    return timer.model_copy(update={
        "remaining_seconds": min(remaining, timer.duration_seconds),
    })


def sync_timers(timers: List[Timer], now: Optional[datetime] = None) -> List[Timer]:
    now = now or utc_now()
    return [sync_timer_state(timer, now) for timer in timers]


def get_progress(timer: Timer, remaining_seconds: Optional[int] = None) -> float:
    """Progress percentage (0-100); remaining_seconds overrides the stored value"""
    if timer.duration_seconds == 0:
        return 0
    remaining = timer.remaining_seconds if remaining_seconds is None else remaining_seconds
    return (timer.duration_seconds - remaining) / timer.duration_seconds * 100


def calculate_end_time(remaining_seconds: int, now: Optional[datetime] = None) -> datetime:
    """Deadline reached after remaining_seconds from now"""
    return (now or utc_now()) + timedelta(seconds=remaining_seconds)


# ============================================================================
# STATE CHANGES
# ============================================================================


def start_update(timer: Timer, now: Optional[datetime] = None) -> TimerUpdate:
    state = transition(timer.state, TimerAction.START)
    return TimerUpdate(state=state, end_time=calculate_end_time(timer.remaining_seconds, now))


def pause_update(timer: Timer, remaining_seconds: int) -> TimerUpdate:
    state = transition(timer.state, TimerAction.PAUSE)
    return TimerUpdate(state=state, remaining_seconds=remaining_seconds, end_time=None)


def reset_update(timer: Timer) -> TimerUpdate:
    state = transition(timer.state, TimerAction.RESET)
    return TimerUpdate(state=state, remaining_seconds=timer.duration_seconds, end_time=None)


def completion_update() -> TimerUpdate:
    return TimerUpdate(state=TimerState.COMPLETED, remaining_seconds=0, end_time=None)


def edit_update(seconds: int) -> TimerUpdate:
    """Editing the time redefines the full duration, not just what is left"""
    return TimerUpdate(
        duration_seconds=seconds,
        remaining_seconds=seconds,
        state=TimerState.STOPPED,
        end_time=None,
    )
