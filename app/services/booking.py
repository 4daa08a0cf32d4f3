# app/services/booking.py
from __future__ import annotations

import secrets
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, local_today, starts_at, utc_now
from app.core.config import Settings, settings
from app.core.errors import (
    BookingError,
    InvalidDuration,
    InvalidRange,
    NotAuthorized,
    NotFound,
    SlotConflict,
    SlotUnavailable,
    StoreUnavailable,
    ValidationError,
)
from app.core.logging import get_logger
from app.core.schedule import MINUTES_PER_DAY, Interval
from app.core.status import ActorRole, BookingStatus
from app.crud import availability as availability_crud
from app.crud import booking as booking_crud
from app.crud import directory
from app.crud import events as events_crud
from app.crud import payment as payment_crud
from app.db.session import Store
from app.schemas.actor import Actor
from app.schemas.booking import BookingRead
from app.services.access import ensure_booking_access
from app.services.availability import load_windows
from app.services.notifications import EventDispatcher
from app.utils.timeout_protection import OperationTimer

logger = get_logger(__name__)

# No 0/O/1/I so references survive being read out over the phone
REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERENCE_LENGTH = 8


# ---------- Internal helpers ----------

def _new_reference(prefix: str) -> str:
    body = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))
    return f"{prefix}-{body}"


def _event_payload(booking, payment=None) -> dict:
    payload = {
        "booking_id": booking.id,
        "reference": booking.reference,
        "patient_id": booking.patient_id,
        "practitioner_id": booking.practitioner_id,
        "clinic_id": booking.clinic_id,
        "date": booking.appointment_date.isoformat(),
        "start_minute": booking.start_minute,
        "duration_min": booking.duration_min,
        "amount": str(booking.amount),
        "currency": booking.currency,
    }
    if payment is not None:
        payload["payment_id"] = payment.id
    return payload


# ---------- Commit engine ----------

class BookingEngine:
    """Reserves slots as pending bookings; one transaction per commit, no internal retries."""

    def __init__(
        self,
        store: Store,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Clock = utc_now,
        config: Settings = settings,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.config = config

    def _validate(
        self,
        actor: Actor,
        patient_id: int,
        appointment_date: date,
        start_minute: int,
        duration_minutes: Optional[int],
    ) -> None:
        if actor.role is ActorRole.PATIENT and actor.id != patient_id:
            raise NotAuthorized("Patients may only book for themselves", actor=actor.label)
        if duration_minutes is not None:
            self._check_duration(duration_minutes)
        if not 0 <= start_minute < MINUTES_PER_DAY:
            raise ValidationError("start must be within the day", start_minute=start_minute)
        if duration_minutes is not None and start_minute + duration_minutes > MINUTES_PER_DAY:
            raise ValidationError("Appointment would run past midnight", start_minute=start_minute)
        horizon = local_today(self.clock()) + timedelta(days=self.config.MAX_LOOKAHEAD_DAYS)
        if appointment_date > horizon:
            raise InvalidRange(
                f"Bookings open at most {self.config.MAX_LOOKAHEAD_DAYS} days ahead",
                date=appointment_date,
            )

    def _check_duration(self, duration_minutes: int) -> None:
        if duration_minutes <= 0 or duration_minutes > self.config.MAX_DURATION_MIN:
            raise InvalidDuration(
                f"Duration must be between 1 and {self.config.MAX_DURATION_MIN} minutes",
                duration_minutes=duration_minutes,
            )

    async def commit_booking(
        self,
        actor: Actor,
        *,
        patient_id: int,
        practitioner_id: int,
        clinic_id: int,
        appointment_date: date,
        start_minute: int,
        duration_minutes: Optional[int] = None,
        treatment_type_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> BookingRead:
        """
        Reserve ``start_minute`` for ``duration_minutes`` on ``appointment_date``.

        1) Validate input (no store access)
        2) Load and check practitioner, clinic, patient and treatment type
        3) Take the practitioner/day schedule lock
        4) Re-resolve the requested interval against windows and non-cancelled bookings
        5) Insert the pending booking, its pending payment and a created event

        Raises SlotUnavailable when the interval is outside every open window and
        SlotConflict when another non-cancelled booking overlaps it; both mean the caller
        should fetch availability again rather than resubmit.
        """
        self._validate(actor, patient_id, appointment_date, start_minute, duration_minutes)

        with OperationTimer("commit_booking"):
            try:
                booking = await self.store.run(
                    self._commit,
                    actor=actor,
                    patient_id=patient_id,
                    practitioner_id=practitioner_id,
                    clinic_id=clinic_id,
                    appointment_date=appointment_date,
                    start_minute=start_minute,
                    duration_minutes=duration_minutes,
                    treatment_type_id=treatment_type_id,
                    notes=notes,
                    name="commit_booking",
                )
            except (SlotConflict, SlotUnavailable) as e:
                logger.info(
                    "booking_rejected",
                    reason=e.code,
                    practitioner_id=practitioner_id,
                    date=appointment_date.isoformat(),
                    start_minute=start_minute,
                )
                raise

        logger.info(
            "booking_committed",
            booking_id=booking.id,
            reference=booking.reference,
            practitioner_id=practitioner_id,
            date=appointment_date.isoformat(),
            start=booking.start_time,
        )
        await self._dispatch()
        return booking

    async def _commit(
        self,
        db: AsyncSession,
        *,
        actor: Actor,
        patient_id: int,
        practitioner_id: int,
        clinic_id: int,
        appointment_date: date,
        start_minute: int,
        duration_minutes: Optional[int],
        treatment_type_id: Optional[int],
        notes: Optional[str],
    ) -> BookingRead:
        practitioner = await directory.require_active_practitioner(db, practitioner_id)
        await directory.require_active_clinic(db, clinic_id)
        await directory.require_active_patient(db, patient_id)
        treatment = None
        if treatment_type_id is not None:
            treatment = await directory.require_active_treatment_type(db, treatment_type_id)

        if duration_minutes is None:
            duration_minutes = treatment.default_duration_min if treatment else self.config.DEFAULT_DURATION_MIN
            self._check_duration(duration_minutes)
        if start_minute + duration_minutes > MINUTES_PER_DAY:
            raise ValidationError("Appointment would run past midnight", start_minute=start_minute)
        requested = Interval(start_minute, start_minute + duration_minutes)

        # Everything below runs serialized per practitioner and day
        await availability_crud.acquire_schedule_lock(db, practitioner_id, appointment_date)

        if starts_at(appointment_date, start_minute) <= self.clock():
            raise SlotUnavailable("That time has already passed", date=appointment_date, start=str(requested))

        windows = await load_windows(db, practitioner_id, clinic_id, appointment_date)
        if not any(window.contains(requested) for window in windows):
            raise SlotUnavailable(
                f"{requested} on {appointment_date} is outside the practitioner's hours",
                date=appointment_date, start=str(requested),
            )

        clash = await booking_crud.find_overlapping(db, practitioner_id, appointment_date, requested)
        if clash is not None:
            raise SlotConflict(
                f"{requested} on {appointment_date} overlaps an existing booking",
                date=appointment_date, start=str(requested),
            )

        reference = await self._allocate_reference(db)
        amount = treatment.price if treatment else practitioner.default_fee

        booking = await booking_crud.insert_booking(
            db,
            reference=reference,
            patient_id=patient_id,
            practitioner_id=practitioner_id,
            clinic_id=clinic_id,
            appointment_date=appointment_date,
            start_minute=start_minute,
            duration_min=duration_minutes,
            amount=amount,
            currency=self.config.CURRENCY,
            treatment_type_id=treatment_type_id,
            notes=notes,
        )
        payment = await payment_crud.create_payment(
            db, booking_id=booking.id, amount=amount, currency=self.config.CURRENCY
        )
        await events_crud.add_event(
            db,
            booking_id=booking.id,
            kind="booking.created",
            from_status=None,
            to_status=BookingStatus.PENDING.value,
            idempotency_key=f"{booking.id}:{BookingStatus.PENDING.value}",
            occurred_at=self.clock(),
            payload={**_event_payload(booking, payment), "actor": actor.label},
        )
        return BookingRead.model_validate(booking)

    async def _allocate_reference(self, db: AsyncSession) -> str:
        for _ in range(self.config.BOOKING_REF_ATTEMPTS):
            candidate = _new_reference(self.config.BOOKING_REF_PREFIX)
            if not await booking_crud.reference_exists(db, candidate):
                return candidate
        raise StoreUnavailable("Could not allocate a booking reference", operation="allocate_reference")

    async def _dispatch(self) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.dispatch_pending()
        except BookingError as e:
            # The booking is committed; the outbox relay picks the event up later
            logger.warning("event_dispatch_deferred", error=str(e))

    # ---------- Reads ----------

    async def get_booking(self, actor: Actor, booking_id: int) -> BookingRead:
        booking = await self.store.run(self._load, booking_id, name="get_booking")
        ensure_booking_access(actor, patient_id=booking.patient_id, practitioner_id=booking.practitioner_id)
        return booking

    async def get_by_reference(self, actor: Actor, reference: str) -> BookingRead:
        booking = await self.store.run(self._load_by_reference, reference, name="get_booking_by_reference")
        ensure_booking_access(actor, patient_id=booking.patient_id, practitioner_id=booking.practitioner_id)
        return booking

    @staticmethod
    async def _load(db: AsyncSession, booking_id: int) -> BookingRead:
        booking = await booking_crud.get_booking(db, booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        return BookingRead.model_validate(booking)

    @staticmethod
    async def _load_by_reference(db: AsyncSession, reference: str) -> BookingRead:
        booking = await booking_crud.get_by_reference(db, reference.strip().upper())
        if booking is None:
            raise NotFound(f"Booking {reference} not found", reference=reference)
        return BookingRead.model_validate(booking)
