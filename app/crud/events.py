# app/crud/events.py

from __future__ import annotations
from datetime import datetime
from typing import Any, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.lifecycle_event import LifecycleEvent


async def add_event(
    db: AsyncSession,
    *,
    booking_id: int,
    kind: str,
    idempotency_key: str,
    occurred_at: datetime,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> LifecycleEvent:
    event = LifecycleEvent(
        booking_id=booking_id,
        kind=kind,
        from_status=from_status,
        to_status=to_status,
        idempotency_key=idempotency_key,
        payload=payload or {},
        occurred_at=occurred_at,
        delivery_status="pending",
        attempts=0,
    )
    db.add(event)
    await db.flush()
    return event


async def list_pending(db: AsyncSession, *, max_attempts: int, limit: int = 100) -> Sequence[LifecycleEvent]:
    res = await db.execute(
        sa.select(LifecycleEvent)
        .where(
            LifecycleEvent.delivery_status == "pending",
            LifecycleEvent.attempts < max_attempts,
        )
        .order_by(LifecycleEvent.id.asc())
        .limit(limit)
    )
    return res.scalars().all()


async def count_pending(db: AsyncSession) -> int:
    res = await db.execute(
        sa.select(sa.func.count(LifecycleEvent.id)).where(LifecycleEvent.delivery_status == "pending")
    )
    return res.scalar_one()


async def list_for_booking(db: AsyncSession, booking_id: int) -> Sequence[LifecycleEvent]:
    res = await db.execute(
        sa.select(LifecycleEvent)
        .where(LifecycleEvent.booking_id == booking_id)
        .order_by(LifecycleEvent.id.asc())
    )
    return res.scalars().all()


async def mark_delivered(db: AsyncSession, event_id: int, delivered_at: datetime) -> None:
    event = await db.get(LifecycleEvent, event_id)
    if event is None:
        return
    event.attempts += 1
    event.delivery_status = "delivered"
    event.delivered_at = delivered_at
    event.last_error = None


async def record_failure(db: AsyncSession, event_id: int, error: str, *, max_attempts: int) -> None:
    event = await db.get(LifecycleEvent, event_id)
    if event is None:
        return
    event.attempts += 1
    event.last_error = error[:1000]
    if event.attempts >= max_attempts:
        event.delivery_status = "failed"
