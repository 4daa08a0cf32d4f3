#!/usr/bin/env python3
"""
Outbox relay: lifecycle events reach subscribers at least once.
"""

import pytest

from app.core.status import BookingStatus
from app.crud import events as events_crud
from app.services.booking import BookingEngine
from app.services.lifecycle import LifecycleCoordinator
from app.services.notifications import EventDispatcher, log_lifecycle_event
from app.services.payments import PaymentService
from tests.factories import CLINIC_ID, NEXT_MONDAY, PATIENT, PATIENT_ID, PRACTITIONER_ID, SYSTEM

pytestmark = pytest.mark.integration


class Recorder:
    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.seen = []

    async def __call__(self, event):
        self.seen.append(event)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("mail server down")


async def commit(store, clock, dispatcher):
    return await BookingEngine(store, dispatcher=dispatcher, clock=clock).commit_booking(
        PATIENT,
        patient_id=PATIENT_ID,
        practitioner_id=PRACTITIONER_ID,
        clinic_id=CLINIC_ID,
        appointment_date=NEXT_MONDAY,
        start_minute=600,
        duration_minutes=60,
    )


async def test_commit_delivers_created_event(store, clock):
    recorder = Recorder()
    dispatcher = EventDispatcher(store, handlers=[recorder, log_lifecycle_event], clock=clock)
    booking = await commit(store, clock, dispatcher)

    assert [e.kind for e in recorder.seen] == ["booking.created"]
    assert recorder.seen[0].booking_id == booking.id
    assert recorder.seen[0].idempotency_key == f"{booking.id}:pending"
    assert await dispatcher.pending() == []


async def test_every_transition_emits_one_event(store, clock):
    recorder = Recorder()
    dispatcher = EventDispatcher(store, clock=clock)
    dispatcher.subscribe(recorder)

    booking = await commit(store, clock, dispatcher)
    await PaymentService(store, dispatcher=dispatcher, clock=clock).settle(booking.id, True, SYSTEM)
    await LifecycleCoordinator(store, dispatcher=dispatcher, clock=clock).transition(
        booking.id, BookingStatus.CONFIRMED, SYSTEM
    )

    assert [e.kind for e in recorder.seen] == ["booking.created", "payment.completed", "booking.transition"]
    keys = [e.idempotency_key for e in recorder.seen]
    assert len(set(keys)) == len(keys)


async def test_handler_failure_does_not_undo_booking(store, clock):
    recorder = Recorder(fail_times=1)
    dispatcher = EventDispatcher(store, handlers=[recorder], clock=clock)
    booking = await commit(store, clock, dispatcher)
    assert booking.status is BookingStatus.PENDING

    pending = await dispatcher.pending()
    assert len(pending) == 1 and pending[0].attempts == 1

    stored = await store.run(events_crud.list_for_booking, booking.id)
    assert "mail server down" in stored[0].last_error

    result = await dispatcher.dispatch_pending()
    assert (result.delivered, result.failed, result.remaining) == (1, 0, 0)
    # Redelivered after the failure: consumers de-duplicate on the key
    assert [e.idempotency_key for e in recorder.seen] == [pending[0].idempotency_key] * 2


async def test_event_gives_up_after_max_attempts(store, clock):
    recorder = Recorder(fail_times=10)
    dispatcher = EventDispatcher(store, handlers=[recorder], max_attempts=2, clock=clock)
    booking = await commit(store, clock, dispatcher)

    result = await dispatcher.dispatch_pending()
    assert result.failed == 1
    assert await dispatcher.pending() == []

    stored = await store.run(events_crud.list_for_booking, booking.id)
    assert stored[0].delivery_status == "failed"
    assert stored[0].attempts == 2


async def test_relay_without_events(store, clock):
    result = await EventDispatcher(store, clock=clock).dispatch_pending()
    assert (result.delivered, result.failed, result.remaining) == (0, 0, 0)


async def test_events_for_booking(store, clock):
    dispatcher = EventDispatcher(store, clock=clock)
    booking = await commit(store, clock, None)
    events = await dispatcher.events_for_booking(booking.id)
    assert [e.kind for e in events] == ["booking.created"]
    assert events[0].payload["practitioner_id"] == PRACTITIONER_ID
