# app/crud/booking.py

from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SlotConflict, StoreUnavailable
from app.core.schedule import Interval
from app.core.status import BookingStatus
from app.db.models.booking import Booking, TreatmentSession

# Unique-violation markers for the active-slot index (Postgres names the index, SQLite lists columns)
ACTIVE_SLOT_MARKERS = ("uq_bookings_active_slot", "bookings.start_minute")
REFERENCE_MARKERS = ("bookings_reference_key", "bookings.reference")


async def list_occupying_bookings(
    db: AsyncSession,
    practitioner_id: int,
    on_date: date,
) -> Sequence[Booking]:
    """Every non-cancelled booking of a practitioner on a date; completed ones still hold their time."""
    q = (
        sa.select(Booking)
        .where(
            Booking.practitioner_id == practitioner_id,
            Booking.appointment_date == on_date,
            Booking.status != BookingStatus.CANCELLED,
        )
        .order_by(Booking.start_minute.asc())
    )
    res = await db.execute(q)
    return res.scalars().all()


async def list_booked_intervals(db: AsyncSession, practitioner_id: int, on_date: date) -> list[Interval]:
    bookings = await list_occupying_bookings(db, practitioner_id, on_date)
    return [Interval(b.start_minute, min(b.end_minute, 24 * 60)) for b in bookings]


async def find_overlapping(
    db: AsyncSession,
    practitioner_id: int,
    on_date: date,
    requested: Interval,
) -> Optional[Booking]:
    for booking in await list_occupying_bookings(db, practitioner_id, on_date):
        if booking.start_minute < requested.end and requested.start < booking.end_minute:
            return booking
    return None


async def reference_exists(db: AsyncSession, reference: str) -> bool:
    res = await db.execute(sa.select(Booking.id).where(Booking.reference == reference))
    return res.scalar_one_or_none() is not None


async def insert_booking(
    db: AsyncSession,
    *,
    reference: str,
    patient_id: int,
    practitioner_id: int,
    clinic_id: int,
    appointment_date: date,
    start_minute: int,
    duration_min: int,
    amount: Decimal,
    currency: str,
    treatment_type_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Booking:
    booking = Booking(
        reference=reference,
        patient_id=patient_id,
        practitioner_id=practitioner_id,
        clinic_id=clinic_id,
        treatment_type_id=treatment_type_id,
        appointment_date=appointment_date,
        start_minute=start_minute,
        duration_min=duration_min,
        status=BookingStatus.PENDING,
        amount=amount,
        currency=currency,
        notes=notes,
    )
    db.add(booking)

    try:
        await db.flush()
    except IntegrityError as e:
        if any(marker in str(e.orig) for marker in ACTIVE_SLOT_MARKERS):
            raise SlotConflict(
                "Another booking already holds that start time",
                practitioner_id=practitioner_id,
                date=appointment_date,
            ) from e
        if any(marker in str(e.orig) for marker in REFERENCE_MARKERS):
            raise StoreUnavailable(
                "Could not allocate a booking reference", operation="allocate_reference"
            ) from e
        raise
    return booking


async def get_booking(db: AsyncSession, booking_id: int, *, for_update: bool = False) -> Optional[Booking]:
    q = sa.select(Booking).where(Booking.id == booking_id)
    if for_update:
        q = q.with_for_update()
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def get_by_reference(db: AsyncSession, reference: str) -> Optional[Booking]:
    res = await db.execute(sa.select(Booking).where(Booking.reference == reference))
    return res.scalar_one_or_none()


async def list_bookings(
    db: AsyncSession,
    *,
    patient_id: Optional[int] = None,
    practitioner_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
) -> Sequence[Booking]:
    q = sa.select(Booking)
    if patient_id is not None:
        q = q.where(Booking.patient_id == patient_id)
    if practitioner_id is not None:
        q = q.where(Booking.practitioner_id == practitioner_id)
    if start_date is not None:
        q = q.where(Booking.appointment_date >= start_date)
    if end_date is not None:
        q = q.where(Booking.appointment_date <= end_date)
    q = q.order_by(Booking.appointment_date.asc(), Booking.start_minute.asc()).limit(limit)
    res = await db.execute(q)
    return res.scalars().all()


async def create_treatment_session(db: AsyncSession, booking: Booking) -> TreatmentSession:
    session_row = TreatmentSession(
        booking_id=booking.id,
        patient_id=booking.patient_id,
        practitioner_id=booking.practitioner_id,
        clinic_id=booking.clinic_id,
        session_date=booking.appointment_date,
        duration_min=booking.duration_min,
        review_eligible=True,
    )
    db.add(session_row)
    await db.flush()
    return session_row
