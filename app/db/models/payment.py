# app/db/models/payment.py

from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.core.status import PaymentStatus
from app.db.models.booking import enum_values
from app.db.session import Base, IdType


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        sa.Index("ix_payments_booking_id", "booking_id"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        IdType, sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        sa.Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    provider_reference: Mapped[str | None] = mapped_column(sa.String(128))
    failure_reason: Mapped[str | None] = mapped_column(sa.Text)

    settled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    refunded_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
