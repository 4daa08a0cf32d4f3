# app/schemas/booking.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from app.core.errors import ValidationError
from app.core.schedule import format_minutes, parse_hhmm
from app.core.status import BookingStatus, PaymentStatus


class BookingCreate(BaseModel):
    patient_id: int
    practitioner_id: int
    clinic_id: int
    date: date
    start_time: str = Field(..., description="Local start time, HH:MM")
    duration_minutes: Optional[int] = Field(None, description="Defaults to the treatment type's length, else 60")
    treatment_type_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("start_time")
    @classmethod
    def _check_start(cls, v: str) -> str:
        try:
            parse_hhmm(v)
        except ValidationError as exc:
            raise ValueError(exc.message)
        return v

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    patient_id: int
    practitioner_id: int
    clinic_id: int
    treatment_type_id: Optional[int] = None
    appointment_date: date
    start_minute: int
    duration_min: int
    status: BookingStatus
    amount: Decimal
    currency: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    late_cancellation: bool = False
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @computed_field
    @property
    def end_time(self) -> str:
        return format_minutes(self.start_minute + self.duration_min)


class TransitionRequest(BaseModel):
    target_status: BookingStatus
    reason: Optional[str] = Field(None, max_length=2000)


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    provider_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    settled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


class SettlementRequest(BaseModel):
    succeeded: bool
    provider_reference: Optional[str] = Field(None, max_length=128)
    failure_reason: Optional[str] = None
