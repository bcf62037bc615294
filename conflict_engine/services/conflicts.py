"""Overlap checks for policy bindings and resource bookings."""

from __future__ import annotations

from typing import Iterable, Sequence

from conflict_engine.domain.intervals import (
    ClosedDateInterval,
    HalfOpenTimeInterval,
    validate_closed,
    validate_half_open,
)
from conflict_engine.domain.models import ApprovalState, Booking, PolicyBinding
from conflict_engine.utils.logger import get_logger

logger = get_logger(__name__)


def check_date_range_overlap(
    candidate: ClosedDateInterval,
    others: Iterable[PolicyBinding],
    exclude_id: str | None = None,
) -> list[PolicyBinding]:
    """Return the bindings whose effective range overlaps *candidate*.

    Overlap rule: closed, day-level. Ranges that share a single boundary day
    DO conflict. The binding whose id equals *exclude_id* (the one being
    edited) is never reported.
    """
    validate_closed(candidate)
    hits = [
        binding
        for binding in others
        if binding.id != exclude_id and candidate.overlaps(binding.effective)
    ]
    logger.debug(
        "date-range check %s..%s: %d conflict(s)",
        candidate.date_from,
        candidate.date_to,
        len(hits),
    )
    return hits


def find_binding_conflicts(
    candidate: PolicyBinding, bindings: Iterable[PolicyBinding]
) -> list[PolicyBinding]:
    """Conflicts for *candidate* among bindings of the same subject."""
    same_subject = [b for b in bindings if b.subject_id == candidate.subject_id]
    return check_date_range_overlap(
        candidate.effective, same_subject, exclude_id=candidate.id
    )


def sort_bindings(bindings: Iterable[PolicyBinding]) -> list[PolicyBinding]:
    """Order bindings by effective start; open-started ones come first."""
    return sorted(bindings, key=lambda b: b.effective.date_from)


def check_booking_overlap(
    candidate: HalfOpenTimeInterval,
    others: Iterable[Booking],
    resource_id: str | None = None,
) -> list[Booking]:
    """Return existing bookings that overlap with the candidate slot.

    Overlap rule: candidate.start < booking.end AND booking.start < candidate.end.
    Exact boundary touches (end == start) are NOT considered conflicts.
    When *resource_id* is given, bookings of other resources are ignored.
    """
    validate_half_open(candidate)
    hits = [
        booking
        for booking in others
        if (resource_id is None or booking.resource_id == resource_id)
        and candidate.overlaps(booking.interval)
    ]
    logger.debug(
        "booking check %s -> %s on %s: %d conflict(s)",
        candidate.start,
        candidate.end,
        resource_id or "<any>",
        len(hits),
    )
    return hits


def confirmed_bookings_for(
    bookings: Sequence[Booking],
    resource_id: str,
    window: HalfOpenTimeInterval,
) -> list[Booking]:
    """Narrow all bookings to the confirmed ones of a resource inside *window*."""
    return [
        booking
        for booking in bookings
        if booking.resource_id == resource_id
        and booking.status == ApprovalState.CONFIRMED
        and window.overlaps(booking.interval)
    ]
