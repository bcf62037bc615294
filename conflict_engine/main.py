"""FastAPI application: HTTP entry point for the conflict engine."""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, model_validator

from conflict_engine.domain.errors import ConflictEngineError
from conflict_engine.domain.intervals import (
    ClosedDateInterval,
    HalfOpenTimeInterval,
    normalize_date_range,
)
from conflict_engine.domain.models import (
    Booking,
    BucketedResult,
    ConflictResult,
    DetailRow,
    Granularity,
    PolicyBinding,
    SubjectCommitment,
)
from conflict_engine.services.conflicts import (
    check_booking_overlap,
    check_date_range_overlap,
    confirmed_bookings_for,
)
from conflict_engine.services.participants import (
    classify_participant_conflicts,
    overlapping_commitments,
    policy_from_settings,
)
from conflict_engine.services.proration import (
    aggregate,
    detail_rows,
    parse_segments,
    window_for,
)
from conflict_engine.utils.config import get_settings
from conflict_engine.utils.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()
app = FastAPI(title=settings.app_name, version=settings.app_version)


# ── Request / response DTOs ───────────────────────────────────────────


class DateRangeCheckRequest(BaseModel):
    effective_from: str | None = None
    effective_to: str | None = None
    bindings: list[PolicyBinding] = Field(default_factory=list)
    exclude_id: str | None = None


class DateRangeCheckResponse(BaseModel):
    candidate: ClosedDateInterval
    conflicts: list[PolicyBinding]


class BookingCheckRequest(BaseModel):
    candidate: HalfOpenTimeInterval
    resource_id: str
    bookings: list[Booking] = Field(default_factory=list)
    confirmed_only: bool = True


class BookingCheckResponse(BaseModel):
    conflicts: list[Booking]


class ParticipantCheckRequest(BaseModel):
    candidate: HalfOpenTimeInterval
    commitments: dict[str, list[SubjectCommitment]] = Field(default_factory=dict)
    exclude_meeting_id: str | None = None
    prefiltered: bool = False


class ProrateRequest(BaseModel):
    segments: list[dict[str, Any]] = Field(default_factory=list)
    window: ClosedDateInterval | None = None
    granularity: Granularity | None = None
    anchor: date | None = None
    include_details: bool = False

    @model_validator(mode="after")
    def _window_or_anchor(self) -> ProrateRequest:
        if self.window is None and (self.granularity is None or self.anchor is None):
            raise ValueError("either window or granularity + anchor is required")
        return self


class ProrateResponse(BaseModel):
    result: BucketedResult
    details: list[DetailRow] = Field(default_factory=list)


def _reject(exc: ConflictEngineError) -> HTTPException:
    logger.info("rejected input: %s", exc)
    return HTTPException(status_code=422, detail=str(exc))


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": settings.app_version}


@app.post("/conflicts/date-range", response_model=DateRangeCheckResponse)
def check_date_range(payload: DateRangeCheckRequest) -> DateRangeCheckResponse:
    """Report policy bindings that overlap the candidate effective range."""
    try:
        candidate = normalize_date_range(payload.effective_from, payload.effective_to)
        conflicts = check_date_range_overlap(
            candidate, payload.bindings, exclude_id=payload.exclude_id
        )
    except ConflictEngineError as exc:
        raise _reject(exc) from exc
    return DateRangeCheckResponse(candidate=candidate, conflicts=conflicts)


@app.post("/conflicts/bookings", response_model=BookingCheckResponse)
def check_bookings(payload: BookingCheckRequest) -> BookingCheckResponse:
    """Report bookings of the resource that the candidate slot would collide with."""
    bookings = payload.bookings
    try:
        if payload.confirmed_only:
            bookings = confirmed_bookings_for(
                bookings, payload.resource_id, payload.candidate
            )
        conflicts = check_booking_overlap(
            payload.candidate, bookings, resource_id=payload.resource_id
        )
    except ConflictEngineError as exc:
        raise _reject(exc) from exc
    return BookingCheckResponse(conflicts=conflicts)


@app.post("/conflicts/participants", response_model=ConflictResult)
def check_participants(payload: ParticipantCheckRequest) -> ConflictResult:
    """Classify each participant's clashing commitments by severity."""
    per_subject = payload.commitments
    try:
        if not payload.prefiltered:
            per_subject = {
                subject_id: overlapping_commitments(
                    payload.candidate, commitments, payload.exclude_meeting_id
                )
                for subject_id, commitments in per_subject.items()
            }
        return classify_participant_conflicts(
            payload.candidate, per_subject, policy=policy_from_settings()
        )
    except ConflictEngineError as exc:
        raise _reject(exc) from exc


@app.post("/reports/prorate", response_model=ProrateResponse)
def prorate_report(payload: ProrateRequest) -> ProrateResponse:
    """Spread segment amounts over the day buckets of a reporting window."""
    window = payload.window or window_for(payload.granularity, payload.anchor)
    try:
        segments = parse_segments(payload.segments)
        result = aggregate(segments, window)
        details = detail_rows(segments, window) if payload.include_details else []
    except ConflictEngineError as exc:
        raise _reject(exc) from exc
    return ProrateResponse(result=result, details=details)
