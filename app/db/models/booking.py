# app/db/models/booking.py

from __future__ import annotations
from datetime import date, datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.core.status import BookingStatus
from app.db.session import Base, IdType

ACTIVE_STATUS_SQL = sa.text("status IN ('pending', 'confirmed')")


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Second line of defense behind the schedule lock: one live booking per start
        sa.Index(
            "uq_bookings_active_slot",
            "practitioner_id", "appointment_date", "start_minute",
            unique=True,
            sqlite_where=ACTIVE_STATUS_SQL,
            postgresql_where=ACTIVE_STATUS_SQL,
        ),
        sa.Index("ix_bookings_practitioner_date", "practitioner_id", "appointment_date"),
        sa.Index("ix_bookings_patient_id", "patient_id"),
        sa.CheckConstraint("duration_min > 0", name="ck_bookings_duration"),
        sa.CheckConstraint("start_minute >= 0 AND start_minute < 1440", name="ck_bookings_start"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(sa.String(32), nullable=False, unique=True)

    patient_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("patients.id"), nullable=False)
    practitioner_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("practitioners.id"), nullable=False)
    clinic_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("clinics.id"), nullable=False)
    treatment_type_id: Mapped[int | None] = mapped_column(IdType, sa.ForeignKey("treatment_types.id"))

    # Local clinic date and minute-of-day
    appointment_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_minute: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    duration_min: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="60")

    status: Mapped[BookingStatus] = mapped_column(
        sa.Enum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False)
    notes: Mapped[str | None] = mapped_column(sa.Text)

    cancellation_reason: Mapped[str | None] = mapped_column(sa.Text)
    cancelled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(sa.String(64))
    # Informational only; fees are computed elsewhere
    late_cancellation: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))

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

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_min


class TreatmentSession(Base):
    """Clinical session record derived from a completed booking."""
    __tablename__ = "treatment_sessions"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("bookings.id"), nullable=False, unique=True)
    patient_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("patients.id"), nullable=False)
    practitioner_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("practitioners.id"), nullable=False)
    clinic_id: Mapped[int] = mapped_column(IdType, sa.ForeignKey("clinics.id"), nullable=False)
    session_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    duration_min: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    review_eligible: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
