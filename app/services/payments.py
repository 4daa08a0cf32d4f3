# app/services/payments.py
"""
Payment settlement for bookings.

The payment provider itself is an outside collaborator; it reports outcomes
through ``settle`` and we keep the booking's payment rows consistent with the
closed ``PAYMENT_TRANSITIONS`` table.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.errors import BookingError, InvalidTransition, NotFound
from app.core.logging import get_logger
from app.core.status import ActorRole, BookingStatus, PaymentStatus, can_transition_payment
from app.crud import booking as booking_crud
from app.crud import events as events_crud
from app.crud import payment as payment_crud
from app.db.models.payment import Payment
from app.db.session import Store
from app.schemas.actor import Actor
from app.schemas.booking import PaymentRead
from app.services.access import ensure_booking_access, ensure_role
from app.services.notifications import EventDispatcher

logger = get_logger(__name__)

REFUNDABLE_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


async def record_payment_event(db: AsyncSession, payment: Payment, now: datetime, actor: Actor) -> None:
    status = payment.status.value
    await events_crud.add_event(
        db,
        booking_id=payment.booking_id,
        kind=f"payment.{status}",
        to_status=status,
        idempotency_key=f"{payment.booking_id}:payment:{payment.id}:{status}",
        occurred_at=now,
        payload={
            "booking_id": payment.booking_id,
            "payment_id": payment.id,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "status": status,
            "provider_reference": payment.provider_reference,
            "failure_reason": payment.failure_reason,
            "actor": actor.label,
        },
    )


def _move(payment: Payment, target: PaymentStatus, now: datetime) -> None:
    if not can_transition_payment(payment.status, target):
        raise InvalidTransition(
            f"Payment {payment.id} cannot go from {payment.status.value} to {target.value}",
            payment_id=payment.id, from_status=payment.status.value, to_status=target.value,
        )
    payment.status = target
    payment.updated_at = now


class PaymentService:
    def __init__(self, store: Store, dispatcher: Optional[EventDispatcher] = None, clock: Clock = utc_now):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    async def settle(
        self,
        booking_id: int,
        succeeded: bool,
        actor: Actor,
        provider_reference: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> PaymentRead:
        """Record the provider's verdict on the booking's outstanding payment."""
        ensure_role(actor, ActorRole.SYSTEM, ActorRole.ADMIN)
        payment = await self.store.run(
            self._settle, booking_id, succeeded, actor, provider_reference, failure_reason,
            name="settle_payment",
        )
        logger.info(
            "payment_settled",
            booking_id=booking_id,
            payment_id=payment.id,
            status=payment.status.value,
            actor=actor.label,
        )
        await self._dispatch()
        return payment

    async def _settle(
        self,
        db: AsyncSession,
        booking_id: int,
        succeeded: bool,
        actor: Actor,
        provider_reference: Optional[str],
        failure_reason: Optional[str],
    ) -> PaymentRead:
        payment = await self._latest(db, booking_id)
        now = self.clock()
        if succeeded:
            _move(payment, PaymentStatus.COMPLETED, now)
            payment.settled_at = now
        else:
            _move(payment, PaymentStatus.FAILED, now)
            payment.failure_reason = failure_reason or "declined"
        if provider_reference:
            payment.provider_reference = provider_reference
        await record_payment_event(db, payment, now, actor)
        await db.flush()
        return PaymentRead.model_validate(payment)

    async def refund(self, booking_id: int, actor: Actor) -> PaymentRead:
        ensure_role(actor, ActorRole.SYSTEM, ActorRole.ADMIN)
        payment = await self.store.run(self._refund, booking_id, actor, name="refund_payment")
        logger.info("payment_refunded", booking_id=booking_id, payment_id=payment.id, actor=actor.label)
        await self._dispatch()
        return payment

    async def _refund(self, db: AsyncSession, booking_id: int, actor: Actor) -> PaymentRead:
        booking = await booking_crud.get_booking(db, booking_id, for_update=True)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        # A refund closes out the visit; a confirmed booking must be cancelled first
        if booking.status not in REFUNDABLE_BOOKING_STATUSES:
            raise InvalidTransition(
                f"Booking {booking.reference} is {booking.status.value}; only cancelled or completed bookings are refunded",
                booking_id=booking_id,
            )
        payment = await self._latest(db, booking_id)
        now = self.clock()
        _move(payment, PaymentStatus.REFUNDED, now)
        payment.refunded_at = now
        await record_payment_event(db, payment, now, actor)
        await db.flush()
        return PaymentRead.model_validate(payment)

    async def retry(self, booking_id: int, actor: Actor) -> PaymentRead:
        """Open a fresh pending payment after a declined one, while the booking still waits."""
        payment = await self.store.run(self._retry, booking_id, actor, name="retry_payment")
        logger.info("payment_retried", booking_id=booking_id, payment_id=payment.id, actor=actor.label)
        await self._dispatch()
        return payment

    async def _retry(self, db: AsyncSession, booking_id: int, actor: Actor) -> PaymentRead:
        booking = await booking_crud.get_booking(db, booking_id, for_update=True)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        ensure_booking_access(actor, patient_id=booking.patient_id, practitioner_id=booking.practitioner_id)
        if booking.status is not BookingStatus.PENDING:
            raise InvalidTransition(
                f"Booking {booking.reference} is {booking.status.value}; only pending bookings take new payments",
                booking_id=booking_id,
            )
        latest = await payment_crud.get_latest_payment(db, booking_id)
        if latest is not None and latest.status is not PaymentStatus.FAILED:
            raise InvalidTransition(
                f"Booking {booking.reference} already has a {latest.status.value} payment",
                booking_id=booking_id,
            )
        payment = await payment_crud.create_payment(
            db, booking_id=booking.id, amount=booking.amount, currency=booking.currency
        )
        await record_payment_event(db, payment, self.clock(), actor)
        return PaymentRead.model_validate(payment)

    async def get_payment(self, booking_id: int, actor: Actor) -> PaymentRead:
        return await self.store.run(self._get, booking_id, actor, name="get_payment")

    async def _get(self, db: AsyncSession, booking_id: int, actor: Actor) -> PaymentRead:
        booking = await booking_crud.get_booking(db, booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        ensure_booking_access(actor, patient_id=booking.patient_id, practitioner_id=booking.practitioner_id)
        return PaymentRead.model_validate(await self._latest(db, booking_id))

    @staticmethod
    async def _latest(db: AsyncSession, booking_id: int) -> Payment:
        payment = await payment_crud.get_latest_payment(db, booking_id, for_update=True)
        if payment is None:
            raise NotFound(f"No payment recorded for booking {booking_id}", booking_id=booking_id)
        return payment

    async def _dispatch(self) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.dispatch_pending()
        except BookingError as e:
            logger.warning("event_dispatch_deferred", error=str(e))
