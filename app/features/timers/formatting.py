"""Display helpers for timer durations and deadlines"""

import re
from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from app import config
from app.features.timers.domain import TimerState, ensure_utc, utc_now

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_TIME_PART = re.compile(r"[0-9]+")


def display_timezone() -> tzinfo:
    name = config.TIMER_DISPLAY_TIMEZONE
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def format_time(seconds: int) -> str:
    """
    Format seconds as M:SS, or H:MM:SS once there is at least an hour.

    >>> format_time(300)
    '5:00'
    >>> format_time(69060)
    '19:11:00'
    """
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_time(text: str) -> Optional[int]:
    """
    Parse "M:SS" or "H:MM:SS" into seconds.

    Returns None for anything malformed: wrong number of parts, signs,
    decimals, or minutes/seconds of 60 and above.
    """
    parts = text.strip().split(":")
    if len(parts) not in (2, 3):
        return None

    if not all(_TIME_PART.fullmatch(part) for part in parts):
        return None

    numbers = [int(part) for part in parts]
    if len(numbers) == 3:
        hours, minutes, seconds = numbers
    else:
        hours = 0
        minutes, seconds = numbers

    if minutes >= 60 or seconds >= 60:
        return None

    return hours * 3600 + minutes * 60 + seconds


def _sunday_based_weekday(value: datetime) -> int:
    # Sunday=0 ... Saturday=6
    return (value.weekday() + 1) % 7


def get_friendly_day_prefix(
    date: datetime,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> str:
    """
    Label a date relative to today.

    Examples: "Today", "Tomorrow", "Tuesday", "Friday Next Week",
    "Monday, February 14"
    """
    zone = tz or display_timezone()
    local_now = ensure_utc(now or utc_now()).astimezone(zone)
    local_date = ensure_utc(date).astimezone(zone)

    days_diff = (local_date.date() - local_now.date()).days

    if days_diff == 0:
        return "Today"
    if days_diff == 1:
        return "Tomorrow"

    day_name = WEEKDAYS[local_date.weekday()]

    # Later this week
    if 2 <= days_diff <= 6 and _sunday_based_weekday(local_date) > _sunday_based_weekday(local_now):
        return day_name

    if 2 <= days_diff <= 13:
        return f"{day_name} Next Week"

    return f"{day_name}, {MONTHS[local_date.month - 1]} {local_date.day}"


def format_clock_time(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """h:mm AM/PM"""
    local = ensure_utc(value).astimezone(tz or display_timezone())
    hour = local.hour % 12 or 12
    period = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {period}"


def format_end_time(
    end_time: Optional[datetime],
    state: TimerState,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[str]:
    """
    Friendly finish time such as "Today at 3:45 PM".

    Returns None if the timer is not running or has no end time.
    """
    if end_time is None or state != TimerState.RUNNING:
        return None

    zone = tz or display_timezone()
    prefix = get_friendly_day_prefix(end_time, now=now, tz=zone)
    return f"{prefix} at {format_clock_time(end_time, tz=zone)}"
