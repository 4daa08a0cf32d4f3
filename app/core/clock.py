# app/core/clock.py
from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from app.core.config import settings

Clock = Callable[[], datetime]

UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.LOCAL_TIMEZONE)


def local_today(now: datetime) -> date:
    return now.astimezone(local_tz()).date()


def starts_at(on_date: date, minute: int) -> datetime:
    """Aware local datetime for a minute-of-day on a clinic date (1440 rolls to next midnight)."""
    midnight = datetime.combine(on_date, time(0, 0), tzinfo=local_tz())
    return midnight + timedelta(minutes=minute)
