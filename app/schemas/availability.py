# app/schemas/availability.py
from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.errors import ValidationError
from app.core.schedule import (
    AvailabilityOverride,
    Interval,
    RecurringRule,
    SlotCandidate,
    format_minutes,
    parse_hhmm,
)


def _hhmm(v: Optional[str]) -> Optional[str]:
    if v is not None:
        try:
            parse_hhmm(v)
        except ValidationError as exc:
            raise ValueError(exc.message)
    return v


class SlotRead(BaseModel):
    date: date
    start_time: str
    end_time: str
    duration_minutes: int

    @classmethod
    def from_candidate(cls, slot: SlotCandidate) -> "SlotRead":
        return cls(
            date=slot.date,
            start_time=format_minutes(slot.start),
            end_time=format_minutes(slot.end),
            duration_minutes=slot.duration,
        )


class AvailabilityResponse(BaseModel):
    practitioner_id: int
    clinic_id: int
    start_date: date
    end_date: date
    slot_minutes: int
    slots: list[SlotRead]


class WindowRead(BaseModel):
    start_time: str
    end_time: str

    @classmethod
    def from_interval(cls, interval: Interval) -> "WindowRead":
        return cls(start_time=format_minutes(interval.start), end_time=format_minutes(interval.end))


class RuleCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday .. 6=Sunday")
    start_time: str
    end_time: str
    clinic_id: Optional[int] = None

    check_times = field_validator("start_time", "end_time")(_hhmm)


class RuleRead(BaseModel):
    id: Optional[int]
    practitioner_id: int
    day_of_week: int
    start_time: str
    end_time: str
    clinic_id: Optional[int]
    is_active: bool

    @classmethod
    def from_rule(cls, rule: RecurringRule) -> "RuleRead":
        return cls(
            id=rule.id,
            practitioner_id=rule.practitioner_id,
            day_of_week=rule.day_of_week,
            start_time=format_minutes(rule.start),
            end_time=format_minutes(rule.end),
            clinic_id=rule.clinic_id,
            is_active=rule.is_active,
        )


class OverrideCreate(BaseModel):
    date: date
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    clinic_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=255)

    check_times = field_validator("start_time", "end_time")(_hhmm)

    @model_validator(mode="after")
    def _times_paired(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        return self


class OverrideRead(BaseModel):
    id: Optional[int]
    practitioner_id: int
    date: date
    is_available: bool
    start_time: Optional[str]
    end_time: Optional[str]
    clinic_id: Optional[int]
    reason: Optional[str]

    @classmethod
    def from_override(cls, override: AvailabilityOverride) -> "OverrideRead":
        return cls(
            id=override.id,
            practitioner_id=override.practitioner_id,
            date=override.date,
            is_available=override.is_available,
            start_time=None if override.start is None else format_minutes(override.start),
            end_time=None if override.end is None else format_minutes(override.end),
            clinic_id=override.clinic_id,
            reason=override.reason,
        )
