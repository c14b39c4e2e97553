"""Timer service - validated, ownership-scoped timer mutations"""
import logging
from datetime import datetime
from typing import Callable, Optional, Union

from app.features.timers.domain import (
    MAX_DURATION_SECONDS,
    MAX_NAME_LENGTH,
    MIN_DURATION_SECONDS,
    InvalidTransitionError,
    Timer,
    TimerCreate,
    TimerState,
    TimerUpdate,
    completion_update,
    pause_update,
    reset_update,
    start_update,
    sync_timer_state,
    sync_timers,
    utc_now,
)
from app.features.timers.schemas import (
    NOT_AUTHENTICATED,
    TIMER_NOT_FOUND,
    CompleteTimerResult,
    CreateTimerResult,
    FetchTimerResult,
    FetchTimersResult,
    TimerErrorKind,
    TimerInput,
    TimerUpdateInput,
    UpdateResult,
)
from app.infra.supabase.repositories.timers import TimerRepository

logger = logging.getLogger(__name__)


# ============================================================================
# VALIDATION
# ============================================================================


def _validate_name(name: str, empty_message: str) -> Optional[str]:
    trimmed = name.strip()
    if not trimmed:
        return empty_message
    if len(trimmed) > MAX_NAME_LENGTH:
        return f"Timer name must be {MAX_NAME_LENGTH} characters or less"
    return None


def _validate_duration(duration_seconds) -> Optional[str]:
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int):
        return "Duration must be a whole number of seconds"
    if duration_seconds < MIN_DURATION_SECONDS:
        return "Duration must be at least 1 second"
    if duration_seconds > MAX_DURATION_SECONDS:
        return "Duration cannot exceed 24 hours"
    return None


def validate_timer_input(data: TimerInput) -> Optional[str]:
    """Return the first validation error for a new timer, or None"""
    return (
        _validate_name(data.name, "Timer name is required")
        or _validate_duration(data.duration_seconds)
    )


def validate_timer_update(data: TimerUpdateInput) -> Optional[str]:
    """Validate only the fields present on a partial update"""
    fields = data.model_fields_set

    if "name" in fields:
        error = _validate_name(data.name or "", "Timer name cannot be empty")
        if error:
            return error

    if "duration_seconds" in fields:
        error = _validate_duration(data.duration_seconds)
        if error:
            return error

    if "remaining_seconds" in fields:
        if data.remaining_seconds is None or data.remaining_seconds < 0:
            return "Remaining seconds must be non-negative"
        if (
            "duration_seconds" in fields
            and data.duration_seconds is not None
            and data.remaining_seconds > data.duration_seconds
        ):
            return "Remaining seconds cannot exceed duration"

    if "state" in fields:
        if data.state not in {state.value for state in TimerState}:
            return "Invalid timer state"
        if data.state == TimerState.RUNNING.value and data.end_time is None:
            return "A running timer needs an end time"

    if "display_order" in fields:
        if data.display_order is None or data.display_order < 0:
            return "Display order must be non-negative"

    return None


def _to_timer_update(data: TimerUpdateInput) -> TimerUpdate:
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    if "state" in changes:
        changes["state"] = TimerState(changes["state"])
        if changes["state"] != TimerState.RUNNING:
            # Only a running timer has a deadline
            changes["end_time"] = None
    return TimerUpdate(**changes)


def _error_message(e: Exception) -> str:
    # PostgREST APIError keeps the database message on .message
    return getattr(e, "message", None) or str(e)


# ============================================================================
# SERVICE
# ============================================================================


class TimerService:
    """
    Timer operations for a single user.

    user_id is None when the request carries no identity; every operation
    then answers "Not authenticated". Nothing here raises: failures come back
    as result models with an error message and kind.
    """

    def __init__(
        self,
        repo: TimerRepository,
        user_id: Optional[str],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repo = repo
        self.user_id = user_id
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_timers(self) -> FetchTimersResult:
        """All of the user's timers, reconciled against their deadlines"""
        if not self.user_id:
            return FetchTimersResult(error=NOT_AUTHENTICATED, error_kind=TimerErrorKind.UNAUTHENTICATED)

        try:
            timers = await self.repo.find_by_user(self.user_id)
        except Exception as e:
            logger.error(f"Error fetching timers for user {self.user_id}: {e}")
            return FetchTimersResult(error=_error_message(e), error_kind=TimerErrorKind.STORAGE)

        return FetchTimersResult(timers=sync_timers(timers, self.now()))

    async def get_timer(self, timer_id: str) -> FetchTimerResult:
        if not self.user_id:
            return FetchTimerResult(error=NOT_AUTHENTICATED, error_kind=TimerErrorKind.UNAUTHENTICATED)

        try:
            timer = await self._find_synced(timer_id)
        except Exception as e:
            logger.error(f"Error fetching timer {timer_id}: {e}")
            return FetchTimerResult(error=_error_message(e), error_kind=TimerErrorKind.STORAGE)

        if timer is None:
            return FetchTimerResult(error=TIMER_NOT_FOUND, error_kind=TimerErrorKind.NOT_FOUND)
        return FetchTimerResult(timer=timer)

    async def _find_synced(self, timer_id: str) -> Optional[Timer]:
        timer = await self.repo.find_by_id(timer_id, self.user_id)
        if timer is None:
            return None
        return sync_timer_state(timer, self.now())

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_timer(self, data: TimerInput) -> CreateTimerResult:
        """Insert a stopped timer with its full duration remaining"""
        if not self.user_id:
            return CreateTimerResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        error = validate_timer_input(data)
        if error:
            return CreateTimerResult.fail(error, TimerErrorKind.VALIDATION)

        try:
            display_order = await self.repo.next_display_order(self.user_id)
            created = await self.repo.create(TimerCreate(
                user_id=self.user_id,
                name=data.name.strip(),
                duration_seconds=data.duration_seconds,
                remaining_seconds=data.duration_seconds,
                state=TimerState.STOPPED,
                enable_completion_color=data.enable_completion_color,
                completion_color=data.completion_color,
                enable_alarm=data.enable_alarm,
                alarm_sound=data.alarm_sound,
                display_order=display_order,
            ))
        except Exception as e:
            logger.error(f"Error creating timer for user {self.user_id}: {e}")
            return CreateTimerResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        logger.info(f"Timer created: {created.id} ({data.duration_seconds}s) for user {self.user_id}")
        return CreateTimerResult.ok(id=created.id)

    async def update_timer(
        self,
        timer_id: str,
        data: Union[TimerUpdateInput, TimerUpdate],
    ) -> UpdateResult:
        """Partial update: only the supplied columns are validated and written"""
        if not self.user_id:
            return UpdateResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        if isinstance(data, TimerUpdate):
            changes = data.model_dump(exclude_unset=True)
            if "state" in changes and changes["state"] is not None:
                changes["state"] = TimerState(changes["state"]).value
            data = TimerUpdateInput(**changes)

        error = validate_timer_update(data)
        if error:
            return UpdateResult.fail(error, TimerErrorKind.VALIDATION)

        if "duration_seconds" in data.model_fields_set and "remaining_seconds" not in data.model_fields_set:
            try:
                timer = await self._find_synced(timer_id)
            except Exception as e:
                logger.error(f"Error loading timer {timer_id} to update: {e}")
                return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)

            if timer is None:
                return UpdateResult.fail(TIMER_NOT_FOUND, TimerErrorKind.NOT_FOUND)
            if timer.remaining_seconds > data.duration_seconds:
                return UpdateResult.fail("Remaining seconds cannot exceed duration", TimerErrorKind.VALIDATION)
            if timer.state == TimerState.RUNNING:
                # The stored value of a running timer is stale; keep the row within the new duration
                data = TimerUpdateInput(**data.model_dump(exclude_unset=True), remaining_seconds=timer.remaining_seconds)

        return await self._write(timer_id, _to_timer_update(data), "updating")

    async def delete_timer(self, timer_id: str) -> UpdateResult:
        if not self.user_id:
            return UpdateResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        try:
            await self.repo.delete(timer_id, self.user_id)
        except Exception as e:
            logger.error(f"Error deleting timer {timer_id}: {e}")
            return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        logger.info(f"Timer deleted: {timer_id}")
        return UpdateResult.ok()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_timer(self, timer_id: str) -> UpdateResult:
        """Run the timer: end_time = now + remaining_seconds"""
        if not self.user_id:
            return UpdateResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        try:
            timer = await self._find_synced(timer_id)
        except Exception as e:
            logger.error(f"Error loading timer {timer_id} to start: {e}")
            return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        if timer is None:
            return UpdateResult.fail(TIMER_NOT_FOUND, TimerErrorKind.NOT_FOUND)

        if timer.state == TimerState.RUNNING:
            # Already counting down; keep the existing deadline
            return UpdateResult.ok()

        if timer.state == TimerState.COMPLETED:
            return UpdateResult.fail("Timer has already completed", TimerErrorKind.CONFLICT)

        if timer.remaining_seconds <= 0:
            return UpdateResult.fail("Timer has no time remaining", TimerErrorKind.CONFLICT)

        update = start_update(timer, self.now())
        result = await self._write(timer_id, update, "starting")
        if result.success:
            logger.info(f"Timer started: {timer_id}, ends at {update.end_time.isoformat()}")
        return result

    async def pause_timer(self, timer_id: str, remaining_seconds: int) -> UpdateResult:
        """
        Pause with the caller's remaining-seconds snapshot.

        The snapshot is stored as-is rather than recomputed from end_time, so
        it can trail the true remaining time by up to one countdown tick.
        """
        if not self.user_id:
            return UpdateResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        if isinstance(remaining_seconds, bool) or not isinstance(remaining_seconds, int) or remaining_seconds < 0:
            return UpdateResult.fail("Remaining seconds must be non-negative", TimerErrorKind.VALIDATION)

        try:
            timer = await self._find_synced(timer_id)
        except Exception as e:
            logger.error(f"Error loading timer {timer_id} to pause: {e}")
            return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        if timer is None:
            return UpdateResult.fail(TIMER_NOT_FOUND, TimerErrorKind.NOT_FOUND)

        if remaining_seconds > timer.duration_seconds:
            return UpdateResult.fail("Remaining seconds cannot exceed duration", TimerErrorKind.VALIDATION)

        try:
            update = pause_update(timer, remaining_seconds)
        except InvalidTransitionError:
            if timer.state == TimerState.COMPLETED:
                return UpdateResult.fail("Timer has already completed", TimerErrorKind.CONFLICT)
            return UpdateResult.fail("Timer is not running", TimerErrorKind.CONFLICT)

        result = await self._write(timer_id, update, "pausing")
        if result.success:
            logger.info(f"Timer paused: {timer_id} with {remaining_seconds}s remaining")
        return result

    async def reset_timer(self, timer_id: str) -> UpdateResult:
        """Back to stopped with the full duration remaining"""
        if not self.user_id:
            return UpdateResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        try:
            timer = await self.repo.find_by_id(timer_id, self.user_id)
        except Exception as e:
            logger.error(f"Error loading timer {timer_id} to reset: {e}")
            return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        if timer is None:
            return UpdateResult.fail(TIMER_NOT_FOUND, TimerErrorKind.NOT_FOUND)

        result = await self._write(timer_id, reset_update(timer), "resetting")
        if result.success:
            logger.info(f"Timer reset: {timer_id}")
        return result

    async def complete_timer(self, timer_id: str) -> CompleteTimerResult:
        """Record that a running timer reached zero"""
        if not self.user_id:
            return CompleteTimerResult.fail(NOT_AUTHENTICATED, TimerErrorKind.UNAUTHENTICATED)

        try:
            timer = await self.repo.find_by_id(timer_id, self.user_id)
        except Exception as e:
            logger.error(f"Error loading timer {timer_id} to complete: {e}")
            return CompleteTimerResult.fail(_error_message(e), TimerErrorKind.STORAGE)

        if timer is None:
            return CompleteTimerResult.fail(TIMER_NOT_FOUND, TimerErrorKind.NOT_FOUND)

        if timer.state == TimerState.COMPLETED:
            return CompleteTimerResult.ok(already_completed=True)

        if timer.state != TimerState.RUNNING:
            return CompleteTimerResult.fail("Timer is not running", TimerErrorKind.CONFLICT)

        result = await self._write(timer_id, completion_update(), "completing")
        if result.success:
            logger.info(f"Timer completed: {timer_id}")
        return CompleteTimerResult(**result.model_dump())

    async def _write(self, timer_id: str, update: TimerUpdate, action: str) -> UpdateResult:
        try:
            await self.repo.update(timer_id, self.user_id, update)
        except Exception as e:
            logger.error(f"Error {action} timer {timer_id}: {e}")
            return UpdateResult.fail(_error_message(e), TimerErrorKind.STORAGE)
        return UpdateResult.ok()
