"""Spread amount-bearing segments (e.g. leave hours) over day buckets."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Union

from dateutil.relativedelta import relativedelta
from pydantic import TypeAdapter, ValidationError

from conflict_engine.domain.errors import InvalidInterval, MalformedSegment
from conflict_engine.domain.intervals import ClosedDateInterval, validate_closed
from conflict_engine.domain.models import (
    AmountSegment,
    Bucket,
    BucketedResult,
    DetailRow,
    Granularity,
    MultiDaySegment,
    SegmentKind,
    SingleDaySlotSegment,
    SubDayRangeSegment,
)
from conflict_engine.utils.config import get_settings
from conflict_engine.utils.logger import get_logger

logger = get_logger(__name__)

Segment = Union[MultiDaySegment, SingleDaySlotSegment, SubDayRangeSegment]

_SEGMENT_ADAPTER: TypeAdapter[Segment] = TypeAdapter(AmountSegment)

_SECONDS_PER_HOUR = 3600


def is_working_day(day: date) -> bool:
    return day.weekday() < 5


def parse_segment(raw: Segment | Mapping[str, Any]) -> Segment:
    """Validate one raw segment mapping against the schema of its ``kind``."""
    if isinstance(raw, (MultiDaySegment, SingleDaySlotSegment, SubDayRangeSegment)):
        return raw
    try:
        return _SEGMENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise MalformedSegment(f"invalid segment {raw!r}: {exc}") from exc


def parse_segments(raws: Iterable[Segment | Mapping[str, Any]]) -> list[Segment]:
    return [parse_segment(raw) for raw in raws]


def _split_evenly(total: float, count: int) -> list[float]:
    """Split *total* into *count* near-equal shares whose sum never exceeds it.

    The last share takes the rounding remainder.
    """
    shares = [total / count] * (count - 1)
    shares.append(max(total - math.fsum(shares), 0.0))
    while shares[-1] > 0 and max(sum(shares), math.fsum(shares)) > total:
        shares[-1] = math.nextafter(shares[-1], -math.inf)
    return shares


def prorate(
    segment: Segment,
    *,
    day_amount: float | None = None,
    half_day_amount: float | None = None,
) -> list[tuple[date, float]]:
    """Return the ``(day, amount)`` shares of *segment*, before any windowing.

    Multi-day spans are split evenly over their Monday to Friday days; weekend
    days get nothing and do not count in the denominator. A span that covers
    only a weekend yields no shares. The shares of a declared total add up to
    at most that total.
    """
    settings = get_settings()
    if day_amount is None:
        day_amount = settings.default_day_amount
    if half_day_amount is None:
        half_day_amount = settings.default_half_day_amount

    if segment.kind == SegmentKind.MULTI_DAY:
        span = ClosedDateInterval(date_from=segment.date_from, date_to=segment.date_to)
        working_days = [day for day in span.days() if is_working_day(day)]
        if not working_days:
            return []
        if segment.total_amount is None:
            shares = [day_amount] * len(working_days)
        else:
            shares = _split_evenly(segment.total_amount, len(working_days))
        return list(zip(working_days, shares))

    if segment.kind == SegmentKind.SINGLE_DAY_SLOT:
        amount = half_day_amount if segment.total_amount is None else segment.total_amount
        return [(segment.day, amount)]

    if segment.total_amount is None:
        amount = (segment.end - segment.start).total_seconds() / _SECONDS_PER_HOUR
    else:
        amount = segment.total_amount
    return [(segment.start.date(), amount)]


def _validate_window(window: ClosedDateInterval) -> ClosedDateInterval:
    validate_closed(window)
    if window.is_unbounded_start or window.is_unbounded_end:
        raise InvalidInterval("reporting window must have both ends set")
    max_days = get_settings().max_report_days
    span_days = (window.date_to - window.date_from).days + 1
    if span_days > max_days:
        raise InvalidInterval(
            f"reporting window spans {span_days} days, more than the {max_days} allowed"
        )
    return window


def aggregate(
    segments: Iterable[Segment | Mapping[str, Any]],
    window: ClosedDateInterval,
    *,
    day_amount: float | None = None,
    half_day_amount: float | None = None,
) -> BucketedResult:
    """Sum segment amounts into one bucket per day of *window*.

    Every day of the window gets a bucket, zero when nothing lands on it.
    Shares that fall outside the window are dropped silently. Raw segment
    mappings are validated first and raise ``MalformedSegment``.
    """
    _validate_window(window)
    segments = parse_segments(segments)

    totals: dict[date, float] = {day: 0.0 for day in window.days()}
    for segment in segments:
        for day, amount in prorate(
            segment, day_amount=day_amount, half_day_amount=half_day_amount
        ):
            if day in totals:
                totals[day] += amount

    buckets = [Bucket(key=day, value=value) for day, value in totals.items()]
    total = math.fsum(bucket.value for bucket in buckets)
    logger.debug(
        "aggregated %d bucket(s) for %s..%s, total=%s",
        len(buckets),
        window.date_from,
        window.date_to,
        total,
    )
    return BucketedResult(window=window, buckets=buckets, total=total)


def _label(segment: Segment) -> str:
    if segment.kind == SegmentKind.MULTI_DAY:
        return "full day"
    if segment.kind == SegmentKind.SINGLE_DAY_SLOT:
        return f"half day ({segment.slot.value})" if segment.slot else "half day"
    return f"{segment.start:%H:%M} -> {segment.end:%H:%M}"


def detail_rows(
    segments: Iterable[Segment | Mapping[str, Any]],
    window: ClosedDateInterval,
    *,
    day_amount: float | None = None,
    half_day_amount: float | None = None,
) -> list[DetailRow]:
    """One row per (segment, day) share inside *window*, ordered by day then source."""
    _validate_window(window)
    segments = parse_segments(segments)

    rows: list[DetailRow] = []
    for index, segment in enumerate(segments):
        source_id = segment.source_id or f"segment-{index}"
        for day, amount in prorate(
            segment, day_amount=day_amount, half_day_amount=half_day_amount
        ):
            if not window.contains(day):
                continue
            rows.append(
                DetailRow(
                    source_id=source_id,
                    day=day,
                    kind=segment.kind,
                    amount=amount,
                    label=_label(segment),
                )
            )
    return sorted(rows, key=lambda row: (row.day, row.source_id))


# ---------------------------------------------------------------------------
# Reporting windows
# ---------------------------------------------------------------------------


def window_for(granularity: Granularity, anchor: date) -> ClosedDateInterval:
    """The reporting window containing *anchor*.

    Weeks run Monday to Sunday; months are calendar months.
    """
    if granularity == Granularity.DAY:
        return ClosedDateInterval(date_from=anchor, date_to=anchor)
    if granularity == Granularity.WEEK:
        monday = anchor - timedelta(days=anchor.weekday())
        return ClosedDateInterval(date_from=monday, date_to=monday + timedelta(days=6))
    first = anchor.replace(day=1)
    return ClosedDateInterval(
        date_from=first, date_to=first + relativedelta(months=1, days=-1)
    )


def shift_anchor(granularity: Granularity, anchor: date, steps: int = 1) -> date:
    """Move *anchor* by *steps* periods (negative steps go back)."""
    if granularity == Granularity.DAY:
        return anchor + timedelta(days=steps)
    if granularity == Granularity.WEEK:
        return anchor + timedelta(weeks=steps)
    return anchor + relativedelta(months=steps)
