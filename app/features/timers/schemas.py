"""Request, response and result schemas for the timers feature"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.features.timers.domain import DEFAULT_ALARM_SOUND, DEFAULT_COMPLETION_COLOR, Timer


class TimerErrorKind(str, Enum):
    """Category of a failed timer operation"""
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"


NOT_AUTHENTICATED = "Not authenticated"
TIMER_NOT_FOUND = "Timer not found"


# ============================================================================
# INPUTS
# ============================================================================


class TimerInput(BaseModel):
    """Create timer request"""
    name: str
    duration_seconds: int
    enable_completion_color: bool = True
    completion_color: str = DEFAULT_COMPLETION_COLOR
    enable_alarm: bool = True
    alarm_sound: str = DEFAULT_ALARM_SOUND


class TimerUpdateInput(BaseModel):
    """Partial timer update - only fields that are sent get validated and written"""
    name: Optional[str] = None
    duration_seconds: Optional[int] = None
    remaining_seconds: Optional[int] = None
    state: Optional[str] = None
    end_time: Optional[datetime] = None
    enable_completion_color: Optional[bool] = None
    completion_color: Optional[str] = None
    enable_alarm: Optional[bool] = None
    alarm_sound: Optional[str] = None
    display_order: Optional[int] = None


class PauseTimerRequest(BaseModel):
    remaining_seconds: int = Field(description="Remaining seconds observed by the caller")


# ============================================================================
# RESULTS
# ============================================================================


class UpdateResult(BaseModel):
    """Outcome of a mutation; failures carry a message instead of raising"""
    success: bool
    error: Optional[str] = None
    error_kind: Optional[TimerErrorKind] = None

    @classmethod
    def ok(cls, **kwargs) -> "UpdateResult":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str, kind: TimerErrorKind) -> "UpdateResult":
        return cls(success=False, error=error, error_kind=kind)


class CreateTimerResult(UpdateResult):
    id: Optional[str] = None


class CompleteTimerResult(UpdateResult):
    """already_completed is set when the row was completed before this call"""
    already_completed: bool = False


class FetchTimersResult(BaseModel):
    timers: List[Timer] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[TimerErrorKind] = None


class FetchTimerResult(BaseModel):
    timer: Optional[Timer] = None
    error: Optional[str] = None
    error_kind: Optional[TimerErrorKind] = None


# ============================================================================
# OVERVIEW
# ============================================================================


class OverviewRow(BaseModel):
    """One line of the timers overview widget"""
    timer: Timer
    remaining_seconds: int
    display_time: str
    progress: float
    end_time_label: Optional[str] = None
    dimmed: bool = False


class OverviewSnapshot(BaseModel):
    rows: List[OverviewRow] = Field(default_factory=list)
    count: int = 0
    hidden_count: int = 0
    more_label: Optional[str] = None
    error: Optional[str] = None
