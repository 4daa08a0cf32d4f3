# app/db/models/availability.py

from __future__ import annotations
from datetime import date, datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base, IdType


class AvailabilityRule(Base):
    """Weekly recurring window for a practitioner, optionally pinned to one clinic."""
    __tablename__ = "availability_rules"
    __table_args__ = (
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day"),
        sa.CheckConstraint("start_minute < end_minute", name="ck_availability_rules_order"),
        sa.Index("ix_availability_rules_practitioner_day", "practitioner_id", "day_of_week"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    practitioner_id: Mapped[int] = mapped_column(
        IdType, sa.ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False
    )
    clinic_id: Mapped[int | None] = mapped_column(IdType, sa.ForeignKey("clinics.id", ondelete="CASCADE"))

    day_of_week: Mapped[int] = mapped_column(sa.Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_minute: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    end_minute: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)


class AvailabilityOverride(Base):
    """Specific date overrides (time off, extra hours)"""
    __tablename__ = "availability_overrides"
    __table_args__ = (
        sa.Index("ix_availability_overrides_practitioner_date", "practitioner_id", "date"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    practitioner_id: Mapped[int] = mapped_column(
        IdType, sa.ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False
    )
    clinic_id: Mapped[int | None] = mapped_column(IdType, sa.ForeignKey("clinics.id", ondelete="CASCADE"))

    on_date: Mapped[date] = mapped_column("date", sa.Date, nullable=False)
    is_available: Mapped[bool] = mapped_column(sa.Boolean, nullable=False)  # False = blocked
    start_minute: Mapped[int | None] = mapped_column(sa.Integer)  # NULL on a block = whole day
    end_minute: Mapped[int | None] = mapped_column(sa.Integer)
    reason: Mapped[str | None] = mapped_column(sa.String(255))  # "Vacation", "Course", etc.

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class ScheduleLock(Base):
    """
    One row per practitioner and day. Booking commits bump ``version`` before
    checking for overlaps, which serializes them for that day.
    """
    __tablename__ = "schedule_locks"

    practitioner_id: Mapped[int] = mapped_column(
        IdType, sa.ForeignKey("practitioners.id", ondelete="CASCADE"), primary_key=True
    )
    lock_date: Mapped[date] = mapped_column(sa.Date, primary_key=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
