"""Severity classification of participant schedule conflicts.

Each subject (participant) of a candidate meeting may already be committed
elsewhere during the same slot. Every such commitment is graded by a policy
table keyed on the other meeting's approval state and the subject's own
response to it:

    confirmed  + accepted       -> HIGH
    confirmed  + declined       -> (not a conflict)
    confirmed  + pending/none   -> MEDIUM
    not confirmed + anything    -> LOW

The first matching rule wins. Role is carried through for display only unless
the policy asks for chair conflicts to be escalated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from conflict_engine.domain.intervals import (
    HalfOpenTimeInterval,
    ensure_comparable,
    validate_half_open,
)
from conflict_engine.domain.models import (
    ApprovalState,
    ConflictItem,
    ConflictResult,
    ConflictSeverity,
    ParticipantResponse,
    ParticipantRole,
    SubjectCommitment,
    SubjectConflicts,
)
from conflict_engine.utils.config import get_settings
from conflict_engine.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeverityRule:
    """One row of the policy table. ``None`` on a match field means "any"."""

    severity: ConflictSeverity | None
    approval_states: frozenset[ApprovalState] | None = None
    responses: frozenset[ParticipantResponse] | None = None

    def matches(self, commitment: SubjectCommitment) -> bool:
        if (
            self.approval_states is not None
            and commitment.other_approval_state not in self.approval_states
        ):
            return False
        if self.responses is not None and commitment.subject_response not in self.responses:
            return False
        return True


@dataclass(frozen=True)
class SeverityPolicy:
    rules: Sequence[SeverityRule] = field(default_factory=tuple)
    escalate_chair: bool = False


_CONFIRMED = frozenset({ApprovalState.CONFIRMED})

DEFAULT_RULES: tuple[SeverityRule, ...] = (
    SeverityRule(
        ConflictSeverity.HIGH,
        approval_states=_CONFIRMED,
        responses=frozenset({ParticipantResponse.ACCEPTED}),
    ),
    SeverityRule(
        None,
        approval_states=_CONFIRMED,
        responses=frozenset({ParticipantResponse.DECLINED}),
    ),
    SeverityRule(ConflictSeverity.MEDIUM, approval_states=_CONFIRMED),
    SeverityRule(ConflictSeverity.LOW),
)

DEFAULT_POLICY = SeverityPolicy(rules=DEFAULT_RULES)


def policy_from_settings() -> SeverityPolicy:
    return SeverityPolicy(
        rules=DEFAULT_RULES,
        escalate_chair=get_settings().escalate_chair_conflicts,
    )


def classify_commitment(
    commitment: SubjectCommitment, policy: SeverityPolicy = DEFAULT_POLICY
) -> ConflictSeverity | None:
    """Grade one commitment; ``None`` means it is not counted as a conflict."""
    for rule in policy.rules:
        if rule.matches(commitment):
            severity = rule.severity
            break
    else:
        return None

    if (
        severity is not None
        and policy.escalate_chair
        and commitment.subject_role == ParticipantRole.CHAIR
    ):
        severity = severity.escalated()
    return severity


def overlapping_commitments(
    candidate: HalfOpenTimeInterval,
    commitments: Iterable[SubjectCommitment],
    exclude_meeting_id: str | None = None,
) -> list[SubjectCommitment]:
    """Keep the commitments that overlap *candidate* (half-open rule).

    *exclude_meeting_id* drops the meeting being edited so it does not
    collide with itself.
    """
    return [
        c
        for c in commitments
        if c.meeting_id != exclude_meeting_id and candidate.overlaps(c.interval)
    ]


def classify_participant_conflicts(
    candidate: HalfOpenTimeInterval,
    per_subject: Mapping[str, Sequence[SubjectCommitment]],
    policy: SeverityPolicy | None = None,
) -> ConflictResult:
    """Classify each subject's overlapping commitments by severity.

    *per_subject* must already be narrowed to commitments that overlap the
    candidate. Subjects keep their mapping order; within a subject, conflicts
    are listed most severe first, then by start time. The summary counts every
    entry, so one meeting shared by two subjects is counted twice.
    """
    validate_half_open(candidate)
    policy = policy or DEFAULT_POLICY

    result = ConflictResult()
    for subject_id, commitments in per_subject.items():
        items: list[ConflictItem] = []
        for commitment in commitments:
            ensure_comparable(candidate, commitment.interval)
            severity = classify_commitment(commitment, policy)
            if severity is None:
                continue
            items.append(ConflictItem(commitment=commitment, severity=severity))
            result.summary[severity] += 1

        items.sort(key=lambda i: (-i.severity.rank, i.commitment.interval.start))
        result.by_subject.append(SubjectConflicts(subject_id=subject_id, conflicts=items))

    result.has_conflicts = any(entry.conflicts for entry in result.by_subject)
    logger.debug(
        "participant check for %d subject(s): %s",
        len(result.by_subject),
        {k.value: v for k, v in result.summary.items()},
    )
    return result
