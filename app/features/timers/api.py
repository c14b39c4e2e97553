"""Timers API endpoints"""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel

from app.features.timers.domain import TIMER_PRESETS, Timer
from app.features.timers.events import TimerCompleted, TimerEventChannel
from app.features.timers.overview import TimersOverview
from app.features.timers.schemas import (
    CompleteTimerResult,
    CreateTimerResult,
    FetchTimerResult,
    FetchTimersResult,
    OverviewSnapshot,
    PauseTimerRequest,
    TimerErrorKind,
    TimerInput,
    TimerUpdateInput,
    UpdateResult,
)
from app.features.timers.service import TimerService
from app.infra.supabase.client import get_supabase_client
from app.infra.supabase.repositories.timers import TimerRepository
from app.middleware.auth import get_optional_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/timers", tags=["timers"])

STATUS_BY_KIND = {
    TimerErrorKind.UNAUTHENTICATED: 401,
    TimerErrorKind.VALIDATION: 400,
    TimerErrorKind.NOT_FOUND: 404,
    TimerErrorKind.CONFLICT: 409,
    TimerErrorKind.STORAGE: 500,
}


class TimerListResponse(BaseModel):
    timers: List[Timer]
    count: int


class TimerResponse(BaseModel):
    timer: Timer


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_timer_repository() -> TimerRepository:
    return TimerRepository(get_supabase_client())


def get_timer_service(
    user_id: Optional[str] = Depends(get_optional_user_id),
    repo: TimerRepository = Depends(get_timer_repository),
) -> TimerService:
    return TimerService(repo, user_id)


def get_timer_events(request: Request) -> TimerEventChannel:
    return request.app.state.timer_events


def _raise_for(result: Union[UpdateResult, FetchTimersResult, FetchTimerResult]) -> None:
    """Translate a failed service result into an HTTP error"""
    if result.error is None:
        return
    status_code = STATUS_BY_KIND.get(result.error_kind, 500)
    if status_code >= 500:
        logger.error(f"Timer operation failed: {result.error}")
    raise HTTPException(status_code=status_code, detail=result.error)


# ============================================================================
# ENDPOINTS
# ============================================================================


@router.get("", response_model=TimerListResponse)
async def list_timers(service: TimerService = Depends(get_timer_service)):
    """List the user's timers in display order, reconciled against their end times"""
    result = await service.list_timers()
    _raise_for(result)
    return {"timers": result.timers, "count": len(result.timers)}


@router.get("/overview", response_model=OverviewSnapshot)
async def get_overview(service: TimerService = Depends(get_timer_service)):
    """
    Summary for the dashboard widget: running, paused, stopped, then
    completed timers, at most a handful of rows plus a "+K more" label.
    """
    overview = TimersOverview(service)
    await overview.load()
    if overview.error:
        raise HTTPException(status_code=STATUS_BY_KIND.get(overview.error_kind, 500), detail=overview.error)
    return overview.snapshot()


@router.get("/presets")
async def list_presets():
    """Quick-create durations offered by the add-timer form"""
    return {"presets": list(TIMER_PRESETS)}


@router.get("/{timer_id}", response_model=TimerResponse)
async def get_timer(timer_id: str, service: TimerService = Depends(get_timer_service)):
    result = await service.get_timer(timer_id)
    _raise_for(result)
    return {"timer": result.timer}


@router.post("", response_model=CreateTimerResult, status_code=201)
async def create_timer(request: TimerInput, service: TimerService = Depends(get_timer_service)):
    result = await service.create_timer(request)
    _raise_for(result)
    return result


@router.patch("/{timer_id}", response_model=UpdateResult)
async def update_timer(
    timer_id: str,
    request: TimerUpdateInput,
    service: TimerService = Depends(get_timer_service),
):
    """Partial update; fields left out of the body are not touched"""
    result = await service.update_timer(timer_id, request)
    _raise_for(result)
    return result


@router.delete("/{timer_id}", response_model=UpdateResult)
async def delete_timer(timer_id: str, service: TimerService = Depends(get_timer_service)):
    result = await service.delete_timer(timer_id)
    _raise_for(result)
    return result


@router.post("/{timer_id}/start", response_model=UpdateResult)
async def start_timer(timer_id: str, service: TimerService = Depends(get_timer_service)):
    result = await service.start_timer(timer_id)
    _raise_for(result)
    return result


@router.post("/{timer_id}/pause", response_model=UpdateResult)
async def pause_timer(
    timer_id: str,
    request: PauseTimerRequest,
    service: TimerService = Depends(get_timer_service),
):
    """Pause using the remaining seconds the client last displayed"""
    result = await service.pause_timer(timer_id, request.remaining_seconds)
    _raise_for(result)
    return result


@router.post("/{timer_id}/reset", response_model=UpdateResult)
async def reset_timer(timer_id: str, service: TimerService = Depends(get_timer_service)):
    result = await service.reset_timer(timer_id)
    _raise_for(result)
    return result


@router.post("/{timer_id}/complete", response_model=CompleteTimerResult)
async def complete_timer(
    timer_id: str,
    background_tasks: BackgroundTasks,
    service: TimerService = Depends(get_timer_service),
    events: TimerEventChannel = Depends(get_timer_events),
):
    """
    Called by a client whose countdown reached zero. Records completion and
    publishes a TimerCompleted event for the alert dispatcher. Repeat calls
    on an already completed timer succeed without alerting again; alerts
    run after the response is sent.
    """
    fetched = await service.get_timer(timer_id)
    _raise_for(fetched)

    result = await service.complete_timer(timer_id)
    _raise_for(result)

    if result.already_completed:
        logger.info(f"Timer {timer_id} was already completed, not alerting again")
    else:
        background_tasks.add_task(events.publish, TimerCompleted(timer=fetched.timer))
    return result
