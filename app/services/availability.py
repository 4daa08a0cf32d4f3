# app/services/availability.py
"""
Open-slot resolution.

Slots are recomputed from current rules, overrides and bookings on every call;
nothing is cached, so a caller about to commit should resolve again first.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, local_today, starts_at, utc_now
from app.core.config import Settings, settings
from app.core.errors import InvalidDuration, InvalidRange
from app.core.logging import get_logger
from app.core.schedule import Interval, SlotCandidate, subtract_intervals, tile, windows_for_date
from app.crud import availability as availability_crud
from app.crud import booking as booking_crud
from app.crud import directory
from app.db.session import Store

logger = get_logger(__name__)


# ---------- Store reads shared with the commit engine ----------

async def load_windows(db: AsyncSession, practitioner_id: int, clinic_id: int, on_date: date) -> list[Interval]:
    rules = await availability_crud.list_rules(db, practitioner_id, day_of_week=on_date.weekday())
    overrides = await availability_crud.list_overrides(db, practitioner_id, on_date, on_date)
    return windows_for_date(practitioner_id, clinic_id, on_date, rules, overrides)


async def load_free_intervals(db: AsyncSession, practitioner_id: int, clinic_id: int, on_date: date) -> list[Interval]:
    """Open windows minus every non-cancelled booking of the practitioner that day, at any clinic."""
    windows = await load_windows(db, practitioner_id, clinic_id, on_date)
    if not windows:
        return []
    booked = await booking_crud.list_booked_intervals(db, practitioner_id, on_date)
    return subtract_intervals(windows, booked)


async def _check_bookable(db: AsyncSession, practitioner_id: int, clinic_id: int) -> None:
    await directory.require_active_practitioner(db, practitioner_id)
    await directory.require_active_clinic(db, clinic_id)


# ---------- Resolver ----------

class AvailabilityResolver:
    def __init__(self, store: Store, clock: Clock = utc_now, config: Settings = settings):
        self.store = store
        self.clock = clock
        self.config = config

    def validate_request(self, start_date: date, end_date: date, slot_minutes: int) -> None:
        if end_date < start_date:
            raise InvalidRange("end_date is before start_date", start_date=start_date, end_date=end_date)
        span = (end_date - start_date).days + 1
        if span > self.config.MAX_LOOKAHEAD_DAYS:
            raise InvalidRange(
                f"Range covers {span} days; at most {self.config.MAX_LOOKAHEAD_DAYS} allowed",
                start_date=start_date, end_date=end_date,
            )
        horizon = local_today(self.clock()) + timedelta(days=self.config.MAX_LOOKAHEAD_DAYS)
        if end_date > horizon:
            raise InvalidRange(
                f"Bookings open at most {self.config.MAX_LOOKAHEAD_DAYS} days ahead",
                end_date=end_date, horizon=horizon,
            )
        if slot_minutes <= 0 or slot_minutes > self.config.MAX_DURATION_MIN:
            raise InvalidDuration(
                f"Slot length must be between 1 and {self.config.MAX_DURATION_MIN} minutes",
                slot_minutes=slot_minutes,
            )

    async def get_open_slots(
        self,
        practitioner_id: int,
        clinic_id: int,
        start_date: date,
        end_date: date,
        slot_minutes: Optional[int] = None,
    ) -> AsyncIterator[SlotCandidate]:
        """
        Yield bookable slots in chronological order, one day at a time.

        Each day is read in its own short transaction, so a consumer that stops
        early never pays for the rest of the range.
        """
        if slot_minutes is None:
            slot_minutes = self.config.DEFAULT_SLOT_MIN
        self.validate_request(start_date, end_date, slot_minutes)
        await self.store.run(_check_bookable, practitioner_id, clinic_id, name="check_bookable")

        now = self.clock()
        on_date = max(start_date, local_today(now))
        yielded = 0
        while on_date <= end_date:
            free = await self.store.run(
                load_free_intervals, practitioner_id, clinic_id, on_date, name="load_free_intervals"
            )
            for interval in tile(free, slot_minutes):
                if starts_at(on_date, interval.start) <= now:
                    continue
                yielded += 1
                yield SlotCandidate(date=on_date, start=interval.start, end=interval.end)
            on_date += timedelta(days=1)

        logger.debug(
            "open_slots_resolved",
            practitioner_id=practitioner_id,
            clinic_id=clinic_id,
            slots=yielded,
        )

    async def list_open_slots(self, *args, **kwargs) -> list[SlotCandidate]:
        return [slot async for slot in self.get_open_slots(*args, **kwargs)]

    async def windows_for_date(self, practitioner_id: int, clinic_id: int, on_date: date) -> list[Interval]:
        return await self.store.run(load_windows, practitioner_id, clinic_id, on_date, name="load_windows")
