#!/usr/bin/env python3
"""
Interval arithmetic and window resolution, no store involved.
"""

from datetime import date

import pytest

from app.core.errors import ValidationError
from app.core.schedule import (
    WHOLE_DAY,
    AvailabilityOverride,
    Interval,
    RecurringRule,
    find_overlapping_rules,
    format_minutes,
    merge_intervals,
    parse_hhmm,
    subtract_intervals,
    tile,
    windows_for_date,
)

pytestmark = pytest.mark.unit

MONDAY = date(2025, 6, 9)
TUESDAY = date(2025, 6, 10)


def iv(start: str, end: str) -> Interval:
    return Interval(parse_hhmm(start), parse_hhmm(end))


class TestTimeParsing:
    def test_parse_and_format(self):
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("24:00") == 1440
        assert format_minutes(570) == "09:30"

    @pytest.mark.parametrize("bad", ["9", "25:00", "12:60", "ab:cd", "24:30", ""])
    def test_rejects_malformed_times(self, bad):
        with pytest.raises(ValidationError):
            parse_hhmm(bad)

    def test_interval_must_be_ordered(self):
        with pytest.raises(ValidationError):
            Interval(600, 600)
        with pytest.raises(ValidationError):
            Interval(700, 600)


class TestMergeAndSubtract:
    def test_merge_joins_overlapping_and_touching(self):
        merged = merge_intervals([iv("11:00", "12:00"), iv("09:00", "10:00"), iv("10:00", "10:30"), iv("09:30", "10:15")])
        assert merged == [iv("09:00", "10:30"), iv("11:00", "12:00")]

    def test_merge_keeps_gaps(self):
        assert merge_intervals([iv("09:00", "10:00"), iv("10:01", "11:00")]) == [
            iv("09:00", "10:00"),
            iv("10:01", "11:00"),
        ]

    def test_subtract_splits_window(self):
        assert subtract_intervals([iv("09:00", "12:00")], [iv("10:00", "11:00")]) == [
            iv("09:00", "10:00"),
            iv("11:00", "12:00"),
        ]

    def test_subtract_clips_edges(self):
        assert subtract_intervals([iv("09:00", "12:00")], [iv("08:00", "09:30"), iv("11:30", "13:00")]) == [
            iv("09:30", "11:30"),
        ]

    def test_subtract_everything(self):
        assert subtract_intervals([iv("09:00", "12:00")], [WHOLE_DAY]) == []

    def test_touching_intervals_do_not_overlap(self):
        assert not iv("09:00", "10:00").overlaps(iv("10:00", "11:00"))
        assert iv("09:00", "10:01").overlaps(iv("10:00", "11:00"))


class TestWindowsForDate:
    def test_rule_only_applies_on_its_weekday(self):
        rules = [RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720)]
        assert windows_for_date(1, 1, MONDAY, rules) == [iv("09:00", "12:00")]
        assert windows_for_date(1, 1, TUESDAY, rules) == []

    def test_clinic_pinned_rule(self):
        rules = [
            RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720, clinic_id=1),
            RecurringRule(practitioner_id=1, day_of_week=0, start=780, end=900, clinic_id=2),
        ]
        assert windows_for_date(1, 1, MONDAY, rules) == [iv("09:00", "12:00")]
        assert windows_for_date(1, 2, MONDAY, rules) == [iv("13:00", "15:00")]

    def test_inactive_and_foreign_rules_ignored(self):
        rules = [
            RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720, is_active=False),
            RecurringRule(practitioner_id=2, day_of_week=0, start=540, end=720),
        ]
        assert windows_for_date(1, 1, MONDAY, rules) == []

    def test_addition_extends_rule(self):
        rules = [RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720)]
        extra = [AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=True, start=720, end=780)]
        assert windows_for_date(1, 1, MONDAY, rules, extra) == [iv("09:00", "13:00")]

    def test_addition_on_day_without_rules(self):
        extra = [AvailabilityOverride(practitioner_id=1, date=TUESDAY, is_available=True, start=600, end=660)]
        assert windows_for_date(1, 1, TUESDAY, [], extra) == [iv("10:00", "11:00")]

    def test_block_wins_over_addition(self):
        overrides = [
            AvailabilityOverride(practitioner_id=1, date=TUESDAY, is_available=True, start=540, end=720),
            AvailabilityOverride(practitioner_id=1, date=TUESDAY, is_available=False, start=600, end=660),
        ]
        assert windows_for_date(1, 1, TUESDAY, [], overrides) == [iv("09:00", "10:00"), iv("11:00", "12:00")]

    def test_block_without_times_closes_day(self):
        rules = [RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720)]
        block = [AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=False, reason="Course")]
        assert windows_for_date(1, 1, MONDAY, rules, block) == []

    def test_block_for_other_clinic_does_not_apply(self):
        rules = [RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720)]
        block = [AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=False, clinic_id=2)]
        assert windows_for_date(1, 1, MONDAY, rules, block) == [iv("09:00", "12:00")]
        assert windows_for_date(1, 2, MONDAY, rules, block) == []

    def test_override_needs_paired_times(self):
        with pytest.raises(ValidationError):
            AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=False, start=540)
        with pytest.raises(ValidationError):
            AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=True)


class TestTiling:
    def test_tiles_from_window_start_and_drops_tail(self):
        slots = list(tile([iv("09:00", "10:45")], 30))
        assert [str(s) for s in slots] == ["09:00-09:30", "09:30-10:00", "10:00-10:30"]

    def test_window_shorter_than_slot(self):
        assert list(tile([iv("09:00", "09:20")], 30)) == []

    def test_tiles_each_window_independently(self):
        slots = list(tile([iv("09:00", "10:00"), iv("11:00", "12:00")], 30))
        assert [s.start for s in slots] == [540, 570, 660, 690]

    def test_rejects_non_positive_length(self):
        with pytest.raises(ValidationError):
            list(tile([iv("09:00", "10:00")], 0))


def test_find_overlapping_rules():
    a = RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=720, id=1)
    b = RecurringRule(practitioner_id=1, day_of_week=0, start=700, end=780, id=2)
    c = RecurringRule(practitioner_id=1, day_of_week=0, start=720, end=780, id=3)
    d = RecurringRule(practitioner_id=1, day_of_week=1, start=540, end=720, id=4)
    assert find_overlapping_rules([a, b]) == [(a, b)]
    assert find_overlapping_rules([a, c, d]) == []


def test_block_inside_working_day_splits_it():
    rules = [RecurringRule(practitioner_id=1, day_of_week=0, start=540, end=1020)]
    block = [AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=False, start=720, end=780)]
    assert windows_for_date(1, 1, MONDAY, rules, block) == [iv("09:00", "12:00"), iv("13:00", "17:00")]


def test_windows_are_disjoint_ordered_and_never_touch():
    rules = [
        RecurringRule(practitioner_id=1, day_of_week=0, start=480, end=600),
        RecurringRule(practitioner_id=1, day_of_week=0, start=600, end=660),
        RecurringRule(practitioner_id=1, day_of_week=0, start=630, end=720),
        RecurringRule(practitioner_id=1, day_of_week=0, start=900, end=960, clinic_id=1),
    ]
    overrides = [
        AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=True, start=720, end=750),
        AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=False, start=500, end=510),
        AvailabilityOverride(practitioner_id=1, date=MONDAY, is_available=True, start=960, end=1000),
    ]
    windows = windows_for_date(1, 1, MONDAY, rules, overrides)
    assert windows == [iv("08:00", "08:20"), iv("08:30", "12:30"), iv("15:00", "16:40")]
    for earlier, later in zip(windows, windows[1:]):
        assert earlier.end < later.start
