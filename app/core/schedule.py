# app/core/schedule.py
"""
Pure schedule model: weekly rules, dated overrides and minute-of-day intervals.

Times are minutes after local midnight (0..1440) and intervals are half-open,
so 09:00-10:00 and 10:00-11:00 touch but do not overlap. Nothing here touches
the database; callers load rules, overrides and bookings and pass them in.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Iterator, Optional, Sequence

from app.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570. '24:00' is accepted as end of day."""
    try:
        hours, minutes = value.strip().split(":")[:2]
        total = int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid time {value!r}; expected HH:MM", value=value)
    if not 0 <= int(minutes) < 60 or not 0 <= total <= MINUTES_PER_DAY:
        raise ValidationError(f"Time {value!r} is outside the day", value=value)
    return total


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True, order=True)
class Interval:
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValidationError(
                f"Invalid interval {self.start}-{self.end}",
                start=self.start, end=self.end,
            )

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


WHOLE_DAY = Interval(0, MINUTES_PER_DAY)


@dataclass(frozen=True)
class RecurringRule:
    practitioner_id: int
    day_of_week: int  # 0=Mon .. 6=Sun
    start: int
    end: int
    clinic_id: Optional[int] = None
    is_active: bool = True
    id: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ValidationError("day_of_week must be 0 (Mon) .. 6 (Sun)", day_of_week=self.day_of_week)
        Interval(self.start, self.end)

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def applies_to(self, practitioner_id: int, clinic_id: Optional[int], on_date: date) -> bool:
        return (
            self.is_active
            and self.practitioner_id == practitioner_id
            and self.day_of_week == on_date.weekday()
            and (self.clinic_id is None or self.clinic_id == clinic_id)
        )


@dataclass(frozen=True)
class AvailabilityOverride:
    practitioner_id: int
    date: date
    is_available: bool
    start: Optional[int] = None
    end: Optional[int] = None
    clinic_id: Optional[int] = None
    reason: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if (self.start is None) != (self.end is None):
            raise ValidationError("Override needs both start and end, or neither")
        if self.start is None and self.is_available:
            raise ValidationError("An extra-availability override needs explicit times")
        if self.start is not None:
            Interval(self.start, self.end)

    @property
    def interval(self) -> Interval:
        # A blocking override without times closes the whole day
        if self.start is None:
            return WHOLE_DAY
        return Interval(self.start, self.end)

    def applies_to(self, practitioner_id: int, clinic_id: Optional[int], on_date: date) -> bool:
        return (
            self.practitioner_id == practitioner_id
            and self.date == on_date
            and (self.clinic_id is None or self.clinic_id == clinic_id)
        )


@dataclass(frozen=True, order=True)
class SlotCandidate:
    date: date
    start: int
    end: int = field(compare=False)

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Collapse overlapping and touching intervals into a minimal ordered set."""
    merged: list[Interval] = []
    for current in sorted(intervals):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def subtract_intervals(base: Iterable[Interval], removals: Iterable[Interval]) -> list[Interval]:
    """Remove every removal from base, clipping or splitting as needed."""
    remaining = merge_intervals(base)
    for cut in merge_intervals(removals):
        pieces: list[Interval] = []
        for piece in remaining:
            if not piece.overlaps(cut):
                pieces.append(piece)
                continue
            if piece.start < cut.start:
                pieces.append(Interval(piece.start, cut.start))
            if cut.end < piece.end:
                pieces.append(Interval(cut.end, piece.end))
        remaining = pieces
    return remaining


def windows_for_date(
    practitioner_id: int,
    clinic_id: Optional[int],
    on_date: date,
    rules: Iterable[RecurringRule],
    overrides: Iterable[AvailabilityOverride] = (),
) -> list[Interval]:
    """
    Open windows for one practitioner at one clinic on one date.

    Matching weekly rules are unioned with extra-availability overrides, then
    blocking overrides are cut out. Blocks are applied last, so a block wins
    over an addition covering the same minutes.
    """
    base = [r.interval for r in rules if r.applies_to(practitioner_id, clinic_id, on_date)]
    dated = [o for o in overrides if o.applies_to(practitioner_id, clinic_id, on_date)]

    base.extend(o.interval for o in dated if o.is_available)
    blocks = [o.interval for o in dated if not o.is_available]
    return subtract_intervals(merge_intervals(base), blocks)


def tile(free: Iterable[Interval], slot_minutes: int) -> Iterator[Interval]:
    """Cut each free interval into back-to-back slots from its start; short tails are dropped."""
    if slot_minutes <= 0:
        raise ValidationError("slot length must be positive", slot_minutes=slot_minutes)
    for window in free:
        cursor = window.start
        while cursor + slot_minutes <= window.end:
            yield Interval(cursor, cursor + slot_minutes)
            cursor += slot_minutes


def find_overlapping_rules(rules: Sequence[RecurringRule]) -> list[tuple[RecurringRule, RecurringRule]]:
    """Pairs of active rules sharing practitioner, weekday and clinic whose times overlap."""
    clashes = []
    active = [r for r in rules if r.is_active]
    for i, first in enumerate(active):
        for second in active[i + 1:]:
            if (
                first.practitioner_id == second.practitioner_id
                and first.day_of_week == second.day_of_week
                and first.clinic_id == second.clinic_id
                and first.interval.overlaps(second.interval)
            ):
                clashes.append((first, second))
    return clashes
