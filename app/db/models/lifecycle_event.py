# app/db/models/lifecycle_event.py

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base, IdType


class LifecycleEvent(Base):
    """Outbox row written in the same transaction as the change it describes"""
    __tablename__ = "lifecycle_events"
    __table_args__ = (
        sa.Index("ix_lifecycle_events_delivery", "delivery_status", "id"),
        sa.Index("ix_lifecycle_events_booking_id", "booking_id"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        IdType, sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )

    # Event details
    kind: Mapped[str] = mapped_column(sa.String(50), nullable=False)  # "booking.transition", "payment.completed"
    from_status: Mapped[str | None] = mapped_column(sa.String(16))
    to_status: Mapped[str | None] = mapped_column(sa.String(16))
    idempotency_key: Mapped[str] = mapped_column(sa.String(128), nullable=False, unique=True)
    payload: Mapped[dict[str, Any]] = mapped_column(sa.JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Delivery tracking
    delivery_status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="pending")  # pending, delivered, failed
    attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(sa.Text)
    delivered_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
