"""Interval value types and the two overlap rules.

Two representations are used and they are deliberately NOT interchangeable:

* ``ClosedDateInterval``: ``[from, to]`` at day granularity. Used for policy
  effective ranges. Touching days overlap (``a.to == b.from`` is a conflict).
* ``HalfOpenTimeInterval``: ``[start, end)`` on instants. Used for bookings
  and meeting slots. Touching instants do not overlap, so back-to-back
  bookings are legal.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator, Union

from dateutil.parser import isoparse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from conflict_engine.domain.errors import InvalidInterval

MIN_DATE = date(1, 1, 1)
MAX_DATE = date(9999, 12, 31)

RawDate = Union[str, date, datetime, None]


class ClosedDateInterval(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date_from: date = Field(default=MIN_DATE, alias="from")
    date_to: date = Field(default=MAX_DATE, alias="to")

    @field_validator("date_from", mode="before")
    @classmethod
    def _open_start(cls, value: RawDate) -> RawDate:
        return MIN_DATE if value in (None, "") else value

    @field_validator("date_to", mode="before")
    @classmethod
    def _open_end(cls, value: RawDate) -> RawDate:
        return MAX_DATE if value in (None, "") else value

    @property
    def is_unbounded_start(self) -> bool:
        return self.date_from == MIN_DATE

    @property
    def is_unbounded_end(self) -> bool:
        return self.date_to == MAX_DATE

    def contains(self, day: date) -> bool:
        return self.date_from <= day <= self.date_to

    def days(self) -> Iterator[date]:
        """Yield every calendar day of the interval, both ends included."""
        day = self.date_from
        while day <= self.date_to:
            yield day
            if day == MAX_DATE:
                return
            day += timedelta(days=1)

    def overlaps(self, other: ClosedDateInterval) -> bool:
        return not (self.date_to < other.date_from or other.date_to < self.date_from)


class HalfOpenTimeInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: HalfOpenTimeInterval) -> bool:
        ensure_comparable(self, other)
        return self.start < other.end and other.start < self.end


def overlaps(
    a: ClosedDateInterval | HalfOpenTimeInterval,
    b: ClosedDateInterval | HalfOpenTimeInterval,
) -> bool:
    """Return True when *a* and *b* intersect.

    Both intervals must share a representation; comparing a closed date range
    with a half-open time range raises ``TypeError``.
    """
    if isinstance(a, ClosedDateInterval) and isinstance(b, ClosedDateInterval):
        return a.overlaps(b)
    if isinstance(a, HalfOpenTimeInterval) and isinstance(b, HalfOpenTimeInterval):
        return a.overlaps(b)
    raise TypeError(
        f"cannot compare {type(a).__name__} with {type(b).__name__}"
    )


def validate_closed(interval: ClosedDateInterval) -> ClosedDateInterval:
    if interval.date_from > interval.date_to:
        raise InvalidInterval(
            f"date range is inverted: {interval.date_from} > {interval.date_to}"
        )
    return interval


def is_aware(moment: datetime) -> bool:
    return moment.tzinfo is not None and moment.utcoffset() is not None


def ensure_comparable(a: HalfOpenTimeInterval, b: HalfOpenTimeInterval) -> None:
    """Raise ``InvalidInterval`` when aware and naive times would be compared."""
    if len({is_aware(moment) for moment in (a.start, a.end, b.start, b.end)}) > 1:
        raise InvalidInterval(
            "cannot compare timezone-aware and naive times: "
            f"{a.start.isoformat()} vs {b.start.isoformat()}"
        )


def validate_half_open(interval: HalfOpenTimeInterval) -> HalfOpenTimeInterval:
    if is_aware(interval.start) != is_aware(interval.end):
        raise InvalidInterval("start and end must both be timezone-aware or both naive")
    if interval.end <= interval.start:
        raise InvalidInterval(
            f"time range must end after it starts: {interval.start} -> {interval.end}"
        )
    return interval


def _coerce_day(value: RawDate, sentinel: date) -> date:
    if value is None:
        return sentinel
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return sentinel
    try:
        return isoparse(text).date()
    except ValueError as exc:
        raise InvalidInterval(f"unparseable date: {value!r}") from exc


def normalize_date_range(raw_from: RawDate, raw_to: RawDate) -> ClosedDateInterval:
    """Build a validated ``ClosedDateInterval`` from optional raw ends.

    A missing start becomes ``MIN_DATE`` and a missing end becomes
    ``MAX_DATE`` (an open-ended, "forever" binding). The literal sentinel
    strings ``0001-01-01`` and ``9999-12-31`` parse to the same values.
    """
    interval = ClosedDateInterval(
        date_from=_coerce_day(raw_from, MIN_DATE),
        date_to=_coerce_day(raw_to, MAX_DATE),
    )
    return validate_closed(interval)
