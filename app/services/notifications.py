# app/services/notifications.py
"""
Outbox relay for lifecycle events.

Events are written in the same transaction as the booking change they
describe and delivered here after commit. Delivery is at-least-once: a
handler may see the same event again after a crash or a failed sibling
handler, so consumers must de-duplicate on ``idempotency_key``.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.logging import get_logger
from app.crud import events as events_crud
from app.db.session import Store
from app.schemas.events import LifecycleEventRead, RelayResult

logger = get_logger(__name__)

EventHandler = Callable[[LifecycleEventRead], Awaitable[None]]


async def _load_pending(db: AsyncSession, max_attempts: int, limit: int) -> list[LifecycleEventRead]:
    rows = await events_crud.list_pending(db, max_attempts=max_attempts, limit=limit)
    return [LifecycleEventRead.model_validate(r) for r in rows]


async def _load_for_booking(db: AsyncSession, booking_id: int) -> list[LifecycleEventRead]:
    rows = await events_crud.list_for_booking(db, booking_id)
    return [LifecycleEventRead.model_validate(r) for r in rows]


class EventDispatcher:
    """Delivers pending outbox events to every subscribed collaborator."""

    def __init__(
        self,
        store: Store,
        handlers: Optional[list[EventHandler]] = None,
        max_attempts: int = settings.EVENT_MAX_ATTEMPTS,
        batch_size: int = settings.EVENT_RELAY_BATCH,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.handlers: list[EventHandler] = handlers if handlers is not None else []
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.clock = clock

    def subscribe(self, handler: EventHandler) -> EventHandler:
        self.handlers.append(handler)
        return handler

    async def pending(self) -> list[LifecycleEventRead]:
        return await self.store.run(_load_pending, self.max_attempts, self.batch_size, name="list_pending_events")

    async def events_for_booking(self, booking_id: int) -> list[LifecycleEventRead]:
        return await self.store.run(_load_for_booking, booking_id, name="list_booking_events")

    async def dispatch_pending(self) -> RelayResult:
        events = await self.pending()
        delivered = failed = 0

        for event in events:
            error = await self._deliver(event)
            if error is None:
                await self.store.run(events_crud.mark_delivered, event.id, self.clock(), name="mark_event_delivered")
                delivered += 1
            else:
                await self.store.run(
                    events_crud.record_failure, event.id, error,
                    max_attempts=self.max_attempts, name="record_event_failure",
                )
                failed += 1

        remaining = await self.store.run(events_crud.count_pending, name="count_pending_events")
        if events:
            logger.info("events_relayed", delivered=delivered, failed=failed, remaining=remaining)
        return RelayResult(delivered=delivered, failed=failed, remaining=remaining)

    async def _deliver(self, event: LifecycleEventRead) -> Optional[str]:
        for handler in self.handlers:
            try:
                await handler(event)
            except Exception as e:
                # Collaborator failures stay on the outbox row for the next relay
                logger.warning(
                    "event_handler_failed",
                    event_id=event.id,
                    kind=event.kind,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )
                return f"{type(e).__name__}: {e}"
        return None


async def log_lifecycle_event(event: LifecycleEventRead) -> None:
    """Default subscriber: records the event for the notification pipeline."""
    logger.info(
        "lifecycle_event",
        booking_id=event.booking_id,
        kind=event.kind,
        from_status=event.from_status,
        to_status=event.to_status,
        idempotency_key=event.idempotency_key,
    )
