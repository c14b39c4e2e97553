"""
Timer completion alerts

Listens for TimerCompleted events and fires two independent side effects:
an alarm tone when the timer has its alarm enabled, and a notification when
the user has granted notification permission. Neither depends on the other.
"""

import io
import logging
import math
import struct
import wave
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from supabase import Client  # type: ignore

from app import config
from app.features.timers.domain import Timer
from app.features.timers.events import TimerCompleted, TimerEventChannel

logger = logging.getLogger(__name__)

ALARM_TONE_COUNT = 3
ALARM_TONE_SECONDS = 0.5
ALARM_TONE_SPACING_SECONDS = 0.7
ALARM_PEAK_GAIN = 0.3
ALARM_ATTACK_SECONDS = 0.1
ALARM_FLOOR_GAIN = 0.01
ALARM_FREQUENCIES: Dict[str, float] = {
    "default": 440.0,  # A4
}
SAMPLE_RATE = 22050


class NotificationPermission(str, Enum):
    """Notification permission as reported by the user's client"""
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class NotificationPermissionProvider(Protocol):
    """Polled on every completion; there is no change event to subscribe to"""

    def get_permission(self) -> NotificationPermission:
        ...


class AudioSink(Protocol):
    def play(self, clip: bytes) -> None:
        ...


class Notifier(Protocol):
    async def notify(self, user_id: str, title: str, body: str, tag: str) -> None:
        ...


class StaticPermissionProvider:
    """Permission held in memory and changed explicitly"""

    def __init__(self, permission: NotificationPermission = NotificationPermission.DEFAULT):
        self._permission = permission

    def get_permission(self) -> NotificationPermission:
        return self._permission

    def set_permission(self, permission: NotificationPermission) -> None:
        logger.info(f"Notification permission changed to {permission.value}")
        self._permission = permission


class CallablePermissionProvider:
    """Adapts any zero-argument function returning a permission value"""

    def __init__(self, getter: Callable[[], Any]):
        self._getter = getter

    def get_permission(self) -> NotificationPermission:
        try:
            return NotificationPermission(self._getter())
        except ValueError:
            return NotificationPermission.DEFAULT


# ============================================================================
# ALARM SOUND
# ============================================================================


@dataclass(frozen=True)
class Tone:
    frequency: float
    start: float
    duration: float
    peak_gain: float


def alarm_tones(sound: str = "default") -> List[Tone]:
    """Three short sine beeps, 0.7s apart"""
    frequency = ALARM_FREQUENCIES.get(sound, ALARM_FREQUENCIES["default"])
    return [
        Tone(
            frequency=frequency,
            start=i * ALARM_TONE_SPACING_SECONDS,
            duration=ALARM_TONE_SECONDS,
            peak_gain=ALARM_PEAK_GAIN,
        )
        for i in range(ALARM_TONE_COUNT)
    ]


def _envelope(t: float, tone: Tone) -> float:
    # Linear attack, then exponential decay down to the floor gain
    if t < ALARM_ATTACK_SECONDS:
        return tone.peak_gain * (t / ALARM_ATTACK_SECONDS)
    decay = (t - ALARM_ATTACK_SECONDS) / (tone.duration - ALARM_ATTACK_SECONDS)
    return tone.peak_gain * (ALARM_FLOOR_GAIN / tone.peak_gain) ** decay


def render_wav(tones: List[Tone], sample_rate: int = SAMPLE_RATE) -> bytes:
    """Mix tones into a mono 16-bit WAV clip"""
    total = max((tone.start + tone.duration for tone in tones), default=0.0)
    samples = [0.0] * int(math.ceil(total * sample_rate))

    for tone in tones:
        first = int(tone.start * sample_rate)
        count = min(int(tone.duration * sample_rate), len(samples) - first)
        for i in range(count):
            t = i / sample_rate
            samples[first + i] += _envelope(t, tone) * math.sin(2 * math.pi * tone.frequency * t)

    frames = b"".join(
        struct.pack("<h", int(max(-1.0, min(1.0, s)) * 32767)) for s in samples
    )

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(frames)
    return buffer.getvalue()


class WavFileSink:
    """Writes each alarm clip into a directory"""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def play(self, clip: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        path = self.directory / f"alarm-{stamp}.wav"
        path.write_bytes(clip)
        logger.info(f"Alarm clip written to {path}")


# ============================================================================
# PUSH NOTIFICATIONS
# ============================================================================


class ExpoPushNotifier:
    """Sends notifications to the user's registered devices via Expo Push API"""

    def __init__(
        self,
        supabase_client: Client,
        push_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.supabase = supabase_client
        self.push_url = push_url or config.EXPO_PUSH_URL
        self._transport = transport

    async def notify(self, user_id: str, title: str, body: str, tag: str) -> None:
        tokens_response = (
            self.supabase.table("push_tokens")
            .select("expo_push_token")
            .eq("user_id", user_id)
            .execute()
        )
        tokens = [row["expo_push_token"] for row in tokens_response.data or []]

        if not tokens:
            logger.info(f"No push tokens registered for user {user_id}, skipping notification")
            return

        messages = [
            {
                "to": token,
                "title": title,
                "body": body,
                "data": {"tag": tag},
                "sound": "default",
                "priority": "high",
                "channelId": "default",
            }
            for token in tokens
        ]

        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                self.push_url,
                json=messages,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=10.0,
            )

        if response.status_code != 200:
            raise Exception(f"Failed to send push notification: {response.text}")

        tickets = response.json().get("data", [])
        for token, ticket in zip(tokens, tickets):
            if ticket.get("status") != "error":
                continue
            error_type = (ticket.get("details") or {}).get("error")
            if error_type == "DeviceNotRegistered":
                self.supabase.table("push_tokens").delete().eq("expo_push_token", token).execute()
                logger.info(f"Removed invalid token: {token}")

        logger.info(f"Push notification '{tag}' sent to {len(tokens)} device(s) for user {user_id}")


# ============================================================================
# DISPATCHER
# ============================================================================


def notification_content(timer: Timer) -> Dict[str, str]:
    return {
        "title": f"Timer Complete: {timer.name}",
        "body": "Your timer has finished!",
        "tag": f"timer-{timer.id}",
    }


class TimerAlertDispatcher:
    """Consumes TimerCompleted events; owns no timer state"""

    def __init__(
        self,
        permissions: NotificationPermissionProvider,
        audio_sink: Optional[AudioSink] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.permissions = permissions
        self.audio_sink = audio_sink
        self.notifier = notifier
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, events: TimerEventChannel) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = events.subscribe(self.handle)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def handle(self, event: TimerCompleted) -> None:
        timer = event.timer

        if timer.enable_alarm:
            self.play_alarm(timer)

        # Independent of the alarm setting
        if self.permissions.get_permission() == NotificationPermission.GRANTED:
            await self.send_notification(timer)

    def play_alarm(self, timer: Timer) -> None:
        if self.audio_sink is None:
            return
        try:
            self.audio_sink.play(render_wav(alarm_tones(timer.alarm_sound)))
        except Exception as e:
            logger.error(f"Error playing alarm sound for timer {timer.id}: {e}")

    async def send_notification(self, timer: Timer) -> None:
        if self.notifier is None:
            return
        content = notification_content(timer)
        try:
            await self.notifier.notify(timer.user_id, content["title"], content["body"], content["tag"])
        except Exception as e:
            logger.error(f"Error sending completion notification for timer {timer.id}: {e}")
