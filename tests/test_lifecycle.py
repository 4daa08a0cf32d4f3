#!/usr/bin/env python3
"""
Booking status transitions and the cascades they trigger.
"""

from datetime import datetime, time

import pytest
import sqlalchemy as sa

from app.core.errors import (
    InvalidTransition,
    NotAuthorized,
    NotFound,
    PaymentRequired,
    SlotConflict,
    ValidationError,
)
from app.core.status import BookingStatus, PaymentStatus
from app.crud import events as events_crud
from app.crud import payment as payment_crud
from app.db.models.booking import TreatmentSession
from app.services.availability import AvailabilityResolver
from app.services.booking import BookingEngine
from app.services.lifecycle import LifecycleCoordinator
from app.services.payments import PaymentService
from tests.factories import (
    ADMIN,
    CLINIC_ID,
    EDMONTON,
    NEXT_MONDAY,
    OTHER_PATIENT,
    OTHER_PATIENT_ID,
    OTHER_PRACTITIONER,
    PATIENT,
    PATIENT_ID,
    PRACTITIONER,
    PRACTITIONER_ID,
    SYSTEM,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def coordinator(store, clock):
    return LifecycleCoordinator(store, clock=clock)


@pytest.fixture
async def booking(store, clock):
    return await BookingEngine(store, clock=clock).commit_booking(
        PATIENT,
        patient_id=PATIENT_ID,
        practitioner_id=PRACTITIONER_ID,
        clinic_id=CLINIC_ID,
        appointment_date=NEXT_MONDAY,
        start_minute=600,
        duration_minutes=60,
    )


@pytest.fixture
async def paid_booking(booking, store, clock):
    await PaymentService(store, clock=clock).settle(booking.id, True, SYSTEM, provider_reference="ch_123")
    return booking


@pytest.fixture
async def confirmed_booking(paid_booking, coordinator):
    return await coordinator.transition(paid_booking.id, BookingStatus.CONFIRMED, SYSTEM)


async def _sessions(db, booking_id):
    res = await db.execute(sa.select(TreatmentSession).where(TreatmentSession.booking_id == booking_id))
    return res.scalars().all()


class TestConfirm:
    async def test_requires_completed_payment(self, booking, coordinator):
        with pytest.raises(PaymentRequired):
            await coordinator.transition(booking.id, BookingStatus.CONFIRMED, SYSTEM)

    async def test_confirms_after_settlement(self, paid_booking, coordinator, store, clock):
        confirmed = await coordinator.transition(paid_booking.id, "confirmed", PRACTITIONER)
        assert confirmed.status is BookingStatus.CONFIRMED
        assert confirmed.confirmed_at == clock()

        events = await store.run(events_crud.list_for_booking, paid_booking.id)
        transition = [e for e in events if e.kind == "booking.transition"]
        assert [(e.from_status, e.to_status) for e in transition] == [("pending", "confirmed")]
        assert transition[0].idempotency_key == f"{paid_booking.id}:confirmed"

    async def test_patient_cannot_confirm(self, paid_booking, coordinator):
        with pytest.raises(NotAuthorized):
            await coordinator.transition(paid_booking.id, BookingStatus.CONFIRMED, PATIENT)

    async def test_failed_payment_does_not_count(self, booking, coordinator, store, clock):
        await PaymentService(store, clock=clock).settle(booking.id, False, SYSTEM, failure_reason="card declined")
        with pytest.raises(PaymentRequired):
            await coordinator.transition(booking.id, BookingStatus.CONFIRMED, ADMIN)


class TestCancel:
    async def test_reason_is_required(self, booking, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT)
        with pytest.raises(ValidationError):
            await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT, reason="   ")

    async def test_cancel_records_who_why_and_voids_pending_payment(self, booking, coordinator, store, clock):
        cancelled = await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT, reason=" Moving away ")

        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == " Moving away "
        assert cancelled.cancelled_by == "patient:1"
        assert cancelled.cancelled_at == clock()
        assert cancelled.late_cancellation is False

        payments = await store.run(payment_crud.list_payments, booking.id)
        assert [(p.status, p.failure_reason) for p in payments] == [(PaymentStatus.FAILED, "booking cancelled")]

    async def test_voided_payment_is_announced(self, booking, coordinator, store):
        await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT, reason="Moving away")

        events = await store.run(events_crud.list_for_booking, booking.id)
        voided = [e for e in events if e.kind == "payment.failed"]
        assert len(voided) == 1
        assert voided[0].payload["failure_reason"] == "booking cancelled"
        assert voided[0].payload["actor"] == "patient:1"

    async def test_late_cancellation_flag(self, booking, coordinator, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(6, 0), tzinfo=EDMONTON))
        cancelled = await coordinator.transition(booking.id, BookingStatus.CANCELLED, ADMIN, reason="Sick")
        assert cancelled.late_cancellation is True

    async def test_late_cancel_of_confirmed_booking(self, confirmed_booking, coordinator, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(8, 0), tzinfo=EDMONTON))
        cancelled = await coordinator.transition(
            confirmed_booking.id, BookingStatus.CANCELLED, PATIENT, reason="Car broke down"
        )
        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.late_cancellation is True
        assert cancelled.cancellation_reason == "Car broke down"

    async def test_cancel_confirmed_keeps_settled_payment_for_refund(self, confirmed_booking, coordinator, store):
        await coordinator.transition(confirmed_booking.id, BookingStatus.CANCELLED, PRACTITIONER, reason="Clinic closed")
        payments = await store.run(payment_crud.list_payments, confirmed_booking.id)
        assert [p.status for p in payments] == [PaymentStatus.COMPLETED]

    async def test_other_practitioner_cannot_cancel(self, booking, coordinator):
        with pytest.raises(NotAuthorized):
            await coordinator.transition(booking.id, BookingStatus.CANCELLED, OTHER_PRACTITIONER, reason="x")

    async def test_other_patient_cannot_cancel(self, booking, coordinator):
        with pytest.raises(NotAuthorized):
            await coordinator.transition(booking.id, BookingStatus.CANCELLED, OTHER_PATIENT, reason="x")


class TestComplete:
    async def test_pending_cannot_complete(self, booking, coordinator, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(11, 0), tzinfo=EDMONTON))
        with pytest.raises(InvalidTransition):
            await coordinator.transition(booking.id, BookingStatus.COMPLETED, PRACTITIONER)

    async def test_not_before_start(self, confirmed_booking, coordinator):
        with pytest.raises(InvalidTransition):
            await coordinator.transition(confirmed_booking.id, BookingStatus.COMPLETED, PRACTITIONER)

    async def test_complete_creates_session_and_review_event(self, confirmed_booking, coordinator, store, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(11, 5), tzinfo=EDMONTON))
        completed = await coordinator.transition(confirmed_booking.id, BookingStatus.COMPLETED, PRACTITIONER)
        assert completed.status is BookingStatus.COMPLETED
        assert completed.completed_at == clock()

        sessions = await store.run(_sessions, confirmed_booking.id)
        assert len(sessions) == 1
        assert sessions[0].duration_min == 60 and sessions[0].review_eligible

        kinds = [e.kind for e in await store.run(events_crud.list_for_booking, confirmed_booking.id)]
        assert "booking.review_eligible" in kinds

    async def test_completed_booking_keeps_its_time(self, confirmed_booking, coordinator, store, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(10, 5), tzinfo=EDMONTON))
        await coordinator.transition(confirmed_booking.id, BookingStatus.COMPLETED, PRACTITIONER)

        resolver = AvailabilityResolver(store, clock=clock)
        slots = await resolver.list_open_slots(PRACTITIONER_ID, CLINIC_ID, NEXT_MONDAY, NEXT_MONDAY, 30)
        assert [s.start for s in slots] == [660, 690]

        with pytest.raises(SlotConflict):
            await BookingEngine(store, clock=clock).commit_booking(
                OTHER_PATIENT,
                patient_id=OTHER_PATIENT_ID,
                practitioner_id=PRACTITIONER_ID,
                clinic_id=CLINIC_ID,
                appointment_date=NEXT_MONDAY,
                start_minute=630,
                duration_minutes=30,
            )

    async def test_patient_cannot_complete(self, confirmed_booking, coordinator, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(11, 5), tzinfo=EDMONTON))
        with pytest.raises(NotAuthorized):
            await coordinator.transition(confirmed_booking.id, BookingStatus.COMPLETED, PATIENT)


class TestTerminalStates:
    async def test_cancelled_is_terminal(self, booking, coordinator):
        await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT, reason="No longer needed")
        with pytest.raises(InvalidTransition):
            await coordinator.transition(booking.id, BookingStatus.CANCELLED, PATIENT, reason="again")
        with pytest.raises(InvalidTransition):
            await coordinator.transition(booking.id, BookingStatus.CONFIRMED, SYSTEM)

    async def test_completed_is_terminal(self, confirmed_booking, coordinator, clock):
        clock.set(datetime.combine(NEXT_MONDAY, time(12, 0), tzinfo=EDMONTON))
        await coordinator.transition(confirmed_booking.id, BookingStatus.COMPLETED, ADMIN)
        with pytest.raises(InvalidTransition):
            await coordinator.transition(confirmed_booking.id, BookingStatus.CANCELLED, ADMIN, reason="oops")

    async def test_cannot_return_to_pending(self, booking, coordinator):
        with pytest.raises(InvalidTransition):
            await coordinator.transition(booking.id, BookingStatus.PENDING, ADMIN)

    async def test_unknown_status(self, booking, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.transition(booking.id, "rescheduled", ADMIN)

    async def test_missing_booking(self, coordinator):
        with pytest.raises(NotFound):
            await coordinator.transition(999, BookingStatus.CANCELLED, ADMIN, reason="x")

    def test_status_table(self):
        assert BookingStatus.CANCELLED.is_terminal and BookingStatus.COMPLETED.is_terminal
        assert BookingStatus.PENDING.holds_slot and BookingStatus.CONFIRMED.holds_slot
        assert not BookingStatus.CANCELLED.holds_slot
