# app/services/lifecycle.py
"""
Booking status transitions and their cascades.

All status changes go through ``LifecycleCoordinator.transition``; the legal
moves live in ``app.core.status.BOOKING_TRANSITIONS`` and nowhere else.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, starts_at, utc_now
from app.core.config import Settings, settings
from app.core.errors import (
    BookingError,
    InvalidTransition,
    NotFound,
    PaymentRequired,
    ValidationError,
)
from app.core.logging import get_logger
from app.core.status import ActorRole, BookingStatus, PaymentStatus, can_transition
from app.crud import booking as booking_crud
from app.crud import events as events_crud
from app.crud import payment as payment_crud
from app.db.models.booking import Booking
from app.db.session import Store
from app.schemas.actor import Actor
from app.schemas.booking import BookingRead
from app.services.access import ensure_booking_access, ensure_role
from app.services.notifications import EventDispatcher
from app.services.payments import record_payment_event

logger = get_logger(__name__)

# Who may request each target status (ownership is checked separately)
TRANSITION_ROLES: dict[BookingStatus, tuple[ActorRole, ...]] = {
    BookingStatus.CONFIRMED: (ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.PRACTITIONER),
    BookingStatus.CANCELLED: (ActorRole.PATIENT, ActorRole.PRACTITIONER, ActorRole.ADMIN, ActorRole.SYSTEM),
    BookingStatus.COMPLETED: (ActorRole.PRACTITIONER, ActorRole.ADMIN),
}


class LifecycleCoordinator:
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

    async def transition(
        self,
        booking_id: int,
        target_status: Union[BookingStatus, str],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> BookingRead:
        try:
            target = BookingStatus(target_status)
        except ValueError:
            raise ValidationError(f"Unknown booking status {target_status!r}", target_status=target_status)

        if target is BookingStatus.PENDING:
            raise InvalidTransition("Bookings cannot be moved back to pending", booking_id=booking_id)
        ensure_role(actor, *TRANSITION_ROLES[target])
        if target is BookingStatus.CANCELLED and (reason is None or not reason.strip()):
            raise ValidationError("A cancellation reason is required", booking_id=booking_id)

        booking = await self.store.run(
            self._apply, booking_id, target, actor, reason, name=f"transition_{target.value}"
        )
        logger.info(
            "booking_transitioned",
            booking_id=booking.id,
            reference=booking.reference,
            to_status=target.value,
            actor=actor.label,
            late_cancellation=booking.late_cancellation if target is BookingStatus.CANCELLED else None,
        )
        await self._dispatch()
        return booking

    async def _apply(
        self,
        db: AsyncSession,
        booking_id: int,
        target: BookingStatus,
        actor: Actor,
        reason: Optional[str],
    ) -> BookingRead:
        booking = await booking_crud.get_booking(db, booking_id, for_update=True)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        ensure_booking_access(actor, patient_id=booking.patient_id, practitioner_id=booking.practitioner_id)

        current = booking.status
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Booking {booking.reference} cannot go from {current.value} to {target.value}",
                booking_id=booking_id, from_status=current.value, to_status=target.value,
            )

        now = self.clock()
        if target is BookingStatus.CONFIRMED:
            await self._confirm(db, booking, now)
        elif target is BookingStatus.CANCELLED:
            await self._cancel(db, booking, actor, reason, now)
        else:
            await self._complete(db, booking, now)

        booking.status = target
        booking.updated_at = now
        await events_crud.add_event(
            db,
            booking_id=booking.id,
            kind="booking.transition",
            from_status=current.value,
            to_status=target.value,
            idempotency_key=f"{booking.id}:{target.value}",
            occurred_at=now,
            payload={
                "booking_id": booking.id,
                "reference": booking.reference,
                "from_status": current.value,
                "to_status": target.value,
                "timestamp": now.isoformat(),
                "actor": actor.label,
                "reason": reason,
                "late_cancellation": booking.late_cancellation,
            },
        )
        await db.flush()
        return BookingRead.model_validate(booking)

    # ---------- Per-target rules ----------

    async def _confirm(self, db: AsyncSession, booking: Booking, now: datetime) -> None:
        payment = await payment_crud.get_authoritative_payment(db, booking.id)
        if payment is None or payment.status is not PaymentStatus.COMPLETED:
            raise PaymentRequired(
                f"Booking {booking.reference} has no completed payment",
                booking_id=booking.id,
                payment_status=payment.status.value if payment else None,
            )
        booking.confirmed_at = now

    async def _cancel(
        self, db: AsyncSession, booking: Booking, actor: Actor, reason: Optional[str], now: datetime
    ) -> None:
        cutoff = timedelta(hours=self.config.CANCELLATION_CUTOFF_HOURS)
        booking.cancellation_reason = reason
        booking.cancelled_at = now
        booking.cancelled_by = actor.label
        booking.late_cancellation = starts_at(booking.appointment_date, booking.start_minute) - now < cutoff

        # Unsettled payments die with the booking; settled ones wait for a refund
        for payment in await payment_crud.list_payments(db, booking.id):
            if payment.status is PaymentStatus.PENDING:
                payment.status = PaymentStatus.FAILED
                payment.failure_reason = "booking cancelled"
                payment.updated_at = now
                await record_payment_event(db, payment, now, actor)

    async def _complete(self, db: AsyncSession, booking: Booking, now: datetime) -> None:
        if now < starts_at(booking.appointment_date, booking.start_minute):
            raise InvalidTransition(
                f"Booking {booking.reference} cannot be completed before it starts",
                booking_id=booking.id,
            )
        booking.completed_at = now
        await booking_crud.create_treatment_session(db, booking)
        await events_crud.add_event(
            db,
            booking_id=booking.id,
            kind="booking.review_eligible",
            idempotency_key=f"{booking.id}:review_eligible",
            occurred_at=now,
            payload={
                "booking_id": booking.id,
                "reference": booking.reference,
                "patient_id": booking.patient_id,
                "practitioner_id": booking.practitioner_id,
            },
        )

    async def _dispatch(self) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.dispatch_pending()
        except BookingError as e:
            logger.warning("event_dispatch_deferred", error=str(e))
