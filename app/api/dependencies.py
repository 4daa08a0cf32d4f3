# app/api/dependencies.py
"""Service factories for route handlers; tests override ``get_store`` and ``get_clock``."""
from __future__ import annotations

from fastapi import Depends

from app.core.clock import Clock, utc_now
from app.db.session import Store, get_store
from app.services.availability import AvailabilityResolver
from app.services.booking import BookingEngine
from app.services.lifecycle import LifecycleCoordinator
from app.services.notifications import EventDispatcher, EventHandler, log_lifecycle_event
from app.services.payments import PaymentService
from app.services.schedule_admin import ScheduleAdmin

# Collaborators subscribed to lifecycle events for the whole process
EVENT_HANDLERS: list[EventHandler] = [log_lifecycle_event]


def get_clock() -> Clock:
    return utc_now


def get_dispatcher(store: Store = Depends(get_store), clock: Clock = Depends(get_clock)) -> EventDispatcher:
    return EventDispatcher(store, handlers=list(EVENT_HANDLERS), clock=clock)


def get_resolver(store: Store = Depends(get_store), clock: Clock = Depends(get_clock)) -> AvailabilityResolver:
    return AvailabilityResolver(store, clock=clock)


def get_engine(
    store: Store = Depends(get_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> BookingEngine:
    return BookingEngine(store, dispatcher=dispatcher, clock=clock)


def get_coordinator(
    store: Store = Depends(get_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> LifecycleCoordinator:
    return LifecycleCoordinator(store, dispatcher=dispatcher, clock=clock)


def get_payments(
    store: Store = Depends(get_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> PaymentService:
    return PaymentService(store, dispatcher=dispatcher, clock=clock)


def get_schedule_admin(store: Store = Depends(get_store)) -> ScheduleAdmin:
    return ScheduleAdmin(store)
