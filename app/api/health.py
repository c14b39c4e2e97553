"""Health check endpoints"""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/")
async def health_check(request: Request):
    """Basic health check endpoint"""
    events = getattr(request.app.state, "timer_events", None)
    return {
        "status": "healthy",
        "service": "dashboard-timers",
        "completion_subscribers": events.subscriber_count if events else 0,
    }
