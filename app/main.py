import logging

# Log configuration (before other imports)
# ruff: noqa: E402
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    force=True
)

from contextlib import asynccontextmanager  # noqa: E402
from pathlib import Path  # noqa: E402

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from app import config  # noqa: E402
from app.api.base import api_router  # noqa: E402
from app.features.timers.alerts import (  # noqa: E402
    ExpoPushNotifier,
    NotificationPermission,
    StaticPermissionProvider,
    TimerAlertDispatcher,
    WavFileSink,
)
from app.features.timers.events import TimerEventChannel  # noqa: E402
from app.infra.supabase.client import get_supabase_client  # noqa: E402

logger = logging.getLogger(__name__)


def build_alert_dispatcher() -> TimerAlertDispatcher:
    """Wire completion alerts from configuration"""
    permission = (
        NotificationPermission.GRANTED
        if config.TIMER_PUSH_NOTIFICATIONS
        else NotificationPermission.DEFAULT
    )
    notifier = ExpoPushNotifier(get_supabase_client()) if config.TIMER_PUSH_NOTIFICATIONS else None
    audio_sink = WavFileSink(Path(config.TIMER_ALARM_CLIP_DIR)) if config.TIMER_ALARM_CLIP_DIR else None

    return TimerAlertDispatcher(
        permissions=StaticPermissionProvider(permission),
        audio_sink=audio_sink,
        notifier=notifier,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    dispatcher = build_alert_dispatcher()
    dispatcher.attach(app.state.timer_events)
    logger.info("Timer alert dispatcher attached")
    yield
    dispatcher.detach()


app = FastAPI(
    title="Dashboard Timers API",
    description="Countdown timers for the personal productivity dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

# One completion channel per process, handed to producers and consumers
app.state.timer_events = TimerEventChannel()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Specify your frontend URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all API routes
app.include_router(api_router)


@app.get("/")
def read_root():
    return {
        "message": "Dashboard Timers API",
        "docs": "/docs",
        "version": "1.0.0"
    }
