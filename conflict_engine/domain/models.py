"""Domain models for the conflict engine."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from conflict_engine.domain.intervals import ClosedDateInterval, HalfOpenTimeInterval

try:
    from enum import StrEnum
except ImportError:  # pragma: no cover - fallback for older Python runtimes

    class StrEnum(str, Enum):
        pass


class ConflictSeverity(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def escalated(self) -> ConflictSeverity:
        """Return the next more serious level (HIGH stays HIGH)."""
        return {
            ConflictSeverity.LOW: ConflictSeverity.MEDIUM,
            ConflictSeverity.MEDIUM: ConflictSeverity.HIGH,
            ConflictSeverity.HIGH: ConflictSeverity.HIGH,
        }[self]


_SEVERITY_RANK = {
    ConflictSeverity.HIGH: 3,
    ConflictSeverity.MEDIUM: 2,
    ConflictSeverity.LOW: 1,
}


class ApprovalState(StrEnum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    DRAFT = "draft"
    CANCELLED = "cancelled"


class ParticipantResponse(StrEnum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PENDING = "pending"
    INVITED = "invited"
    NONE = "none"


class ParticipantRole(StrEnum):
    CHAIR = "chair"
    REQUIRED = "required"
    OPTIONAL = "optional"


class SegmentKind(StrEnum):
    MULTI_DAY = "MULTI_DAY"
    SINGLE_DAY_SLOT = "SINGLE_DAY_SLOT"
    SUB_DAY_RANGE = "SUB_DAY_RANGE"


class DaySlot(StrEnum):
    AM = "AM"
    PM = "PM"


class Granularity(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# ---------------------------------------------------------------------------
# Interval-bearing records supplied by callers
# ---------------------------------------------------------------------------


class PolicyBinding(BaseModel):
    """A policy (e.g. a shift type) assigned to a subject over a date range."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject_id: str
    policy_code: str
    effective: ClosedDateInterval


class Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    resource_id: str
    interval: HalfOpenTimeInterval
    title: str = ""
    status: ApprovalState = ApprovalState.CONFIRMED


class SubjectCommitment(BaseModel):
    """Another engagement of a subject that may collide with a candidate slot."""

    model_config = ConfigDict(frozen=True)

    meeting_id: str
    interval: HalfOpenTimeInterval
    other_approval_state: ApprovalState
    subject_response: ParticipantResponse = ParticipantResponse.NONE
    subject_role: ParticipantRole | None = None
    title: str = ""
    resource_id: str | None = None


# ---------------------------------------------------------------------------
# Classification results
# ---------------------------------------------------------------------------


def _zero_summary() -> dict[ConflictSeverity, int]:
    return {severity: 0 for severity in ConflictSeverity}


class ConflictItem(BaseModel):
    commitment: SubjectCommitment
    severity: ConflictSeverity


class SubjectConflicts(BaseModel):
    subject_id: str
    conflicts: list[ConflictItem] = Field(default_factory=list)


class ConflictResult(BaseModel):
    has_conflicts: bool = False
    summary: dict[ConflictSeverity, int] = Field(default_factory=_zero_summary)
    by_subject: list[SubjectConflicts] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Amount segments (tagged union on ``kind``)
# ---------------------------------------------------------------------------


class MultiDaySegment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["MULTI_DAY"] = "MULTI_DAY"
    date_from: date = Field(alias="from")
    date_to: date = Field(alias="to")
    total_amount: float | None = Field(default=None, ge=0)
    source_id: str | None = None

    @model_validator(mode="after")
    def _to_not_before_from(self) -> MultiDaySegment:
        if self.date_to < self.date_from:
            raise ValueError("to must not be before from")
        return self


class SingleDaySlotSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["SINGLE_DAY_SLOT"] = "SINGLE_DAY_SLOT"
    day: date
    slot: DaySlot | None = None
    total_amount: float | None = Field(default=None, ge=0)
    source_id: str | None = None


class SubDayRangeSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["SUB_DAY_RANGE"] = "SUB_DAY_RANGE"
    start: datetime
    end: datetime
    total_amount: float | None = Field(default=None, ge=0)
    source_id: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> SubDayRangeSegment:
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise ValueError("start and end must both be timezone-aware or both naive")
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


AmountSegment = Annotated[
    Union[MultiDaySegment, SingleDaySlotSegment, SubDayRangeSegment],
    Field(discriminator="kind"),
]


class Bucket(BaseModel):
    key: date
    value: float = 0.0


class BucketedResult(BaseModel):
    window: ClosedDateInterval
    buckets: list[Bucket] = Field(default_factory=list)
    total: float = 0.0


class DetailRow(BaseModel):
    """One day's share of one segment, as listed under the report chart."""

    source_id: str
    day: date
    kind: SegmentKind
    amount: float
    label: str = ""
