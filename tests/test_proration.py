"""Tests for bucketed proration of leave-style amounts."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from conflict_engine.domain.errors import InvalidInterval, MalformedSegment
from conflict_engine.domain.intervals import ClosedDateInterval
from conflict_engine.domain.models import (
    Granularity,
    MultiDaySegment,
    SegmentKind,
    SingleDaySlotSegment,
    SubDayRangeSegment,
)
from conflict_engine.services.proration import (
    aggregate,
    detail_rows,
    parse_segment,
    parse_segments,
    prorate,
    shift_anchor,
    window_for,
)

# 2024-03-04 is a Monday.
MON, TUE, WED, THU, FRI, SAT, SUN = (date(2024, 3, d) for d in range(4, 11))


def _window(start: date, end: date) -> ClosedDateInterval:
    return ClosedDateInterval(date_from=start, date_to=end)


def _values(result) -> dict[date, float]:
    return {bucket.key: bucket.value for bucket in result.buckets}


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------


def test_every_window_day_gets_a_bucket():
    result = aggregate([], _window(MON, SUN))
    assert [bucket.key for bucket in result.buckets] == [MON, TUE, WED, THU, FRI, SAT, SUN]
    assert result.total == 0


def test_multi_day_total_is_fully_distributed():
    segment = MultiDaySegment(date_from=MON, date_to=FRI, total_amount=30)
    result = aggregate([segment], _window(MON, SUN))
    assert result.total == pytest.approx(30)
    assert _values(result)[WED] == pytest.approx(6)


def test_multi_day_over_weekend_skips_weekend_days():
    segment = MultiDaySegment(date_from=FRI, date_to=date(2024, 3, 11), total_amount=10)
    result = aggregate([segment], _window(MON, date(2024, 3, 11)))
    values = _values(result)
    assert values[SAT] == 0
    assert values[SUN] == 0
    assert values[FRI] == pytest.approx(5)
    assert values[date(2024, 3, 11)] == pytest.approx(5)


def test_weekend_only_segment_contributes_nothing():
    segment = MultiDaySegment(date_from=SAT, date_to=SUN, total_amount=16)
    result = aggregate([segment], _window(MON, SUN))
    assert all(bucket.value == 0 for bucket in result.buckets)


def test_default_day_amount_clipped_to_window():
    """Mon-Wed at 8/day over a Tue-Wed window sums to 16, not 24."""
    segment = MultiDaySegment(date_from=MON, date_to=WED)
    result = aggregate([segment], _window(TUE, WED))
    assert result.total == pytest.approx(16)
    assert MON not in _values(result)


def test_segment_entirely_outside_window_is_ignored():
    segment = MultiDaySegment(date_from=date(2024, 2, 1), date_to=date(2024, 2, 2))
    result = aggregate([segment], _window(MON, FRI))
    assert result.total == 0


@pytest.mark.parametrize(
    "window, expected",
    [
        ((TUE, WED), 0),
        ((WED, THU), 8),
        ((THU, THU), 8),
        ((FRI, SUN), 0),
    ],
)
def test_window_boundaries_are_inclusive(window, expected):
    segment = MultiDaySegment(date_from=THU, date_to=THU)
    assert aggregate([segment], _window(*window)).total == pytest.approx(expected)


def test_half_day_slot_defaults_to_four():
    segment = SingleDaySlotSegment(day=TUE, slot="AM")
    result = aggregate([segment], _window(MON, FRI))
    assert _values(result)[TUE] == 4


def test_half_day_slot_explicit_amount_and_outside_window():
    inside = SingleDaySlotSegment(day=WED, total_amount=3.5)
    outside = SingleDaySlotSegment(day=date(2024, 4, 1))
    result = aggregate([inside, outside], _window(MON, FRI))
    assert result.total == pytest.approx(3.5)


def test_sub_day_range_uses_elapsed_hours():
    segment = SubDayRangeSegment(
        start=datetime(2024, 3, 5, 13, 0, tzinfo=timezone.utc),
        end=datetime(2024, 3, 5, 15, 30, tzinfo=timezone.utc),
    )
    result = aggregate([segment], _window(MON, FRI))
    assert _values(result)[TUE] == pytest.approx(2.5)


def test_sub_day_range_is_keyed_by_start_day():
    segment = SubDayRangeSegment(
        start=datetime(2024, 3, 8, 22, 0),
        end=datetime(2024, 3, 9, 2, 0),
        total_amount=1,
    )
    result = aggregate([segment], _window(MON, SUN))
    values = _values(result)
    assert values[FRI] == 1
    assert values[SAT] == 0


def test_explicit_day_amount_overrides_default():
    segment = MultiDaySegment(date_from=MON, date_to=TUE)
    result = aggregate([segment], _window(MON, FRI), day_amount=7.5)
    assert result.total == pytest.approx(15)


def test_mixed_segments_sum_into_total():
    segments = [
        MultiDaySegment(date_from=MON, date_to=TUE),
        SingleDaySlotSegment(day=TUE),
        SubDayRangeSegment(
            start=datetime(2024, 3, 6, 9, 0), end=datetime(2024, 3, 6, 10, 0)
        ),
    ]
    result = aggregate(segments, _window(MON, SUN))
    assert _values(result)[TUE] == pytest.approx(12)
    assert result.total == pytest.approx(21)


def test_unbounded_window_is_rejected():
    with pytest.raises(InvalidInterval):
        aggregate([], ClosedDateInterval(date_from=MON))


def test_inverted_window_is_rejected():
    with pytest.raises(InvalidInterval):
        aggregate([], _window(FRI, MON))


def _span_with_working_days(count: int) -> tuple[date, date]:
    end = MON
    working = 1
    while working < count:
        end += timedelta(days=1)
        if end.weekday() < 5:
            working += 1
    return MON, end


@pytest.mark.parametrize(
    "total, working_days",
    [(40, 10), (0.1, 7), (0.3, 3), (10, 3), (1, 9), (7.7, 11), (0.0, 4)],
)
def test_prorate_never_exceeds_declared_total(total, working_days):
    start, end = _span_with_working_days(working_days)
    segment = MultiDaySegment(date_from=start, date_to=end, total_amount=total)
    amounts = [amount for _, amount in prorate(segment)]
    assert len(amounts) == working_days
    assert sum(amounts) <= total
    assert math.fsum(amounts) <= total
    assert math.fsum(amounts) == pytest.approx(total)
    assert all(amount >= 0 for amount in amounts)
    assert aggregate([segment], _window(start, end)).total <= total


def test_prorate_remainder_goes_to_last_day():
    start, end = _span_with_working_days(7)
    segment = MultiDaySegment(date_from=start, date_to=end, total_amount=0.1)
    shares = prorate(segment)
    assert [amount for _, amount in shares[:-1]] == [0.1 / 7] * 6
    assert shares[-1][0] == end
    assert shares[-1][1] == pytest.approx(0.1 / 7)


def test_aggregate_validates_raw_segments():
    with pytest.raises(MalformedSegment):
        aggregate([{"kind": "MULTI_DAY", "from": "2024-03-04"}], _window(MON, SUN))
    with pytest.raises(MalformedSegment):
        detail_rows([{"kind": "MULTI_DAY", "from": "2024-03-04"}], _window(MON, SUN))


def test_aggregate_accepts_raw_segment_mappings():
    raw = {"kind": "SINGLE_DAY_SLOT", "day": "2024-03-05", "slot": "AM", "source_id": "r1"}
    assert aggregate([raw], _window(MON, SUN)).total == 4
    rows = detail_rows([raw], _window(MON, SUN))
    assert [(row.source_id, row.day) for row in rows] == [("r1", TUE)]


def test_window_longer_than_the_limit_is_rejected():
    with pytest.raises(InvalidInterval):
        aggregate([], _window(date(2000, 1, 1), date(2100, 12, 31)))
    with pytest.raises(InvalidInterval):
        detail_rows([], _window(date(2023, 1, 1), date(2024, 1, 2)))


def test_window_of_a_leap_year_is_allowed():
    result = aggregate([], _window(date(2024, 1, 1), date(2024, 12, 31)))
    assert len(result.buckets) == 366


# ---------------------------------------------------------------------------
# parse_segment
# ---------------------------------------------------------------------------


def test_parse_segment_dispatches_on_kind():
    segment = parse_segment({"kind": "MULTI_DAY", "from": "2024-03-04", "to": "2024-03-06"})
    assert isinstance(segment, MultiDaySegment)
    assert segment.date_to == WED


@pytest.mark.parametrize(
    "raw",
    [
        {"kind": "MULTI_DAY", "from": "2024-03-04"},
        {"kind": "SINGLE_DAY_SLOT"},
        {"kind": "SUB_DAY_RANGE", "start": "2024-03-04T10:00:00"},
        {"kind": "SUB_DAY_RANGE", "start": "2024-03-04T10:00:00", "end": "2024-03-04T09:00:00"},
        {"kind": "SUB_DAY_RANGE", "start": "2024-03-04T10:00:00Z", "end": "2024-03-04T11:00:00"},
        {"kind": "MULTI_DAY", "from": "2024-03-06", "to": "2024-03-04"},
        {"kind": "SINGLE_DAY_SLOT", "day": "2024-03-04", "total_amount": -1},
        {"kind": "WEEKLY", "day": "2024-03-04"},
        {"day": "2024-03-04"},
    ],
)
def test_malformed_segments_are_rejected(raw):
    with pytest.raises(MalformedSegment):
        parse_segment(raw)


def test_parse_segments_passes_models_through():
    model = SingleDaySlotSegment(day=MON)
    assert parse_segments([model]) == [model]


# ---------------------------------------------------------------------------
# detail_rows
# ---------------------------------------------------------------------------


def test_detail_rows_list_each_day_share_in_window():
    segments = [
        MultiDaySegment(date_from=MON, date_to=WED, total_amount=12, source_id="req-b"),
        SingleDaySlotSegment(day=TUE, slot="PM", source_id="req-a"),
    ]
    rows = detail_rows(segments, _window(TUE, SUN))
    assert [(row.day, row.source_id) for row in rows] == [
        (TUE, "req-a"),
        (TUE, "req-b"),
        (WED, "req-b"),
    ]
    assert rows[0].kind == SegmentKind.SINGLE_DAY_SLOT
    assert rows[0].label == "half day (PM)"
    assert rows[1].amount == pytest.approx(4)


def test_detail_rows_label_sub_day_ranges():
    segment = SubDayRangeSegment(
        start=datetime(2024, 3, 5, 13, 0), end=datetime(2024, 3, 5, 15, 0)
    )
    rows = detail_rows([segment], _window(MON, FRI))
    assert rows[0].source_id == "segment-0"
    assert rows[0].label == "13:00 -> 15:00"


# ---------------------------------------------------------------------------
# Reporting windows
# ---------------------------------------------------------------------------


def test_window_for_day():
    assert window_for(Granularity.DAY, WED) == _window(WED, WED)


def test_window_for_week_runs_monday_to_sunday():
    assert window_for(Granularity.WEEK, SUN) == _window(MON, SUN)
    assert window_for(Granularity.WEEK, MON) == _window(MON, SUN)


def test_window_for_month_handles_leap_february():
    window = window_for(Granularity.MONTH, date(2024, 2, 14))
    assert window == _window(date(2024, 2, 1), date(2024, 2, 29))


def test_shift_anchor():
    assert shift_anchor(Granularity.DAY, MON, -1) == date(2024, 3, 3)
    assert shift_anchor(Granularity.WEEK, MON) == date(2024, 3, 11)
    assert shift_anchor(Granularity.MONTH, date(2024, 1, 31)) == date(2024, 2, 29)
