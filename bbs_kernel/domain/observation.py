"""
Observation domain types (``bbs_kernel.domain.observation``).

Responsibility
--------------
Pure value objects for the observation aggregate: the observation itself,
its owned corrective actions, review/closure records, the advisory
assessment, and the transition history record.  Also defines the status
enumerations and the allowed status edges.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* OL-1: Status edges -- ``OBSERVATION_TRANSITIONS`` defines the only valid
  aggregate status changes.  ``closed`` has no outgoing edges.
* OL-2: Action monotonicity -- ``ACTION_TRANSITIONS`` never leads back
  from ``completed``.
* OL-3: ``status == open`` iff ``review is None``; approved and
  pending_closure imply an approving review; closed implies an approving
  closure.  ``check_consistency`` reports violations.
* OL-4: ``completed_date`` is set iff the action is completed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Enumerations
# =========================================================================


class ObservationType(str, Enum):
    UNSAFE_ACT = "unsafe_act"
    UNSAFE_CONDITION = "unsafe_condition"
    SAFE_BEHAVIOR = "safe_behavior"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Corrective action priority shares the severity scale.
Priority = Severity


class ObservationStatus(str, Enum):
    """Observation lifecycle states."""

    OPEN = "open"
    APPROVED = "approved"
    PENDING_CLOSURE = "pending_closure"
    CLOSED = "closed"
    REASSIGNED = "reassigned"


class ActionStatus(str, Enum):
    """Corrective action lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REASSIGN = "reassign"


class ClosureDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Status edges (OL-1, OL-2)
# =========================================================================


OBSERVATION_TRANSITIONS: dict[ObservationStatus, frozenset[ObservationStatus]] = {
    ObservationStatus.OPEN: frozenset({
        ObservationStatus.OPEN,
        ObservationStatus.APPROVED,
        ObservationStatus.PENDING_CLOSURE,
        ObservationStatus.REASSIGNED,
    }),
    ObservationStatus.APPROVED: frozenset({
        ObservationStatus.APPROVED,
        ObservationStatus.PENDING_CLOSURE,
    }),
    ObservationStatus.PENDING_CLOSURE: frozenset({
        ObservationStatus.PENDING_CLOSURE,
        ObservationStatus.CLOSED,
        ObservationStatus.REASSIGNED,
    }),
    ObservationStatus.REASSIGNED: frozenset({
        ObservationStatus.REASSIGNED,
        ObservationStatus.OPEN,
    }),
    ObservationStatus.CLOSED: frozenset(),
}

TERMINAL_OBSERVATION_STATUSES: frozenset[ObservationStatus] = frozenset({
    ObservationStatus.CLOSED,
})

ACTION_TRANSITIONS: dict[ActionStatus, frozenset[ActionStatus]] = {
    ActionStatus.PENDING: frozenset({
        ActionStatus.IN_PROGRESS,
        ActionStatus.COMPLETED,
    }),
    ActionStatus.IN_PROGRESS: frozenset({
        ActionStatus.COMPLETED,
    }),
    ActionStatus.COMPLETED: frozenset(),
}

MIN_EFFECTIVENESS_RATING = 1
MAX_EFFECTIVENESS_RATING = 5


# =========================================================================
# Aggregate members
# =========================================================================


@dataclass(frozen=True)
class CorrectiveAction:
    """A remediation task owned by exactly one observation."""

    id: UUID
    action: str
    assigned_to: UUID
    position: int
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None
    status: ActionStatus = ActionStatus.PENDING
    started_at: datetime | None = None
    completed_date: datetime | None = None
    completion_evidence: str | None = None
    completion_comments: str | None = None
    lessons_learned: str | None = None
    effectiveness_rating: int | None = None
    evidence_photos: tuple[str, ...] = ()

    @property
    def is_completed(self) -> bool:
        return self.status == ActionStatus.COMPLETED


@dataclass(frozen=True)
class ReviewRecord:
    reviewed_by: UUID
    reviewed_at: datetime
    decision: ReviewDecision
    comments: str = ""
    reassign_reason: str | None = None


@dataclass(frozen=True)
class ClosureRecord:
    decided_by: UUID
    decided_at: datetime
    decision: ClosureDecision
    comments: str = ""


@dataclass(frozen=True)
class AdvisoryAssessment:
    """Non-authoritative advisor output.  Never consulted by guards."""

    source: str
    risk_level: Severity | None = None
    risk_assessment: str = ""
    suggested_actions: tuple[str, ...] = ()
    confidence: float | None = None


@dataclass(frozen=True)
class Observation:
    """Immutable snapshot of an observation aggregate."""

    id: UUID
    report_number: str
    company_id: UUID
    plant_id: UUID
    observer_id: UUID
    observation_type: ObservationType
    severity: Severity
    status: ObservationStatus
    category: str
    description: str
    observation_date: datetime
    area_id: UUID | None = None
    location_area: str | None = None
    specific_location: str | None = None
    immediate_action: str | None = None
    root_cause: str | None = None
    corrective_actions: tuple[CorrectiveAction, ...] = ()
    review: ReviewRecord | None = None
    closure: ClosureRecord | None = None
    completed_at: datetime | None = None
    completed_by: UUID | None = None
    advisory: AdvisoryAssessment | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_OBSERVATION_STATUSES

    def find_action(self, action_id: UUID) -> CorrectiveAction | None:
        for action in self.corrective_actions:
            if action.id == action_id:
                return action
        return None

    def all_actions_completed(self) -> bool:
        """Conjunction over the whole collection; vacuously true when empty."""
        return all(a.is_completed for a in self.corrective_actions)

    def actions_assigned_to(self, actor_id: UUID) -> tuple[CorrectiveAction, ...]:
        return tuple(a for a in self.corrective_actions if a.assigned_to == actor_id)


@dataclass(frozen=True)
class ObservationDraft:
    """Field values collected by the report form at creation time."""

    observation_type: ObservationType
    severity: Severity
    category: str
    description: str
    observation_date: datetime
    plant_id: UUID | None = None
    area_id: UUID | None = None
    location_area: str | None = None
    specific_location: str | None = None
    immediate_action: str | None = None
    root_cause: str | None = None


@dataclass(frozen=True)
class TransitionRecord:
    """One committed transition in an observation's history."""

    id: UUID
    observation_id: UUID
    sequence: int
    event: str
    actor_id: UUID
    actor_role: str
    from_status: ObservationStatus | None
    to_status: ObservationStatus
    occurred_at: datetime
    detail: dict[str, Any] = field(default_factory=dict)


# =========================================================================
# Consistency (OL-3, OL-4)
# =========================================================================


def check_consistency(observation: Observation) -> list[str]:
    """Return a list of invariant violations (empty when consistent)."""
    problems: list[str] = []
    status = observation.status
    review = observation.review

    if (status == ObservationStatus.OPEN) != (review is None):
        problems.append("status=open must coincide with an unset review")
    if status in (ObservationStatus.APPROVED, ObservationStatus.PENDING_CLOSURE):
        if review is None or review.decision != ReviewDecision.APPROVE:
            problems.append(f"status={status.value} requires an approving review")
    if status == ObservationStatus.CLOSED:
        if observation.closure is None or observation.closure.decision != ClosureDecision.APPROVE:
            problems.append("status=closed requires an approving closure")
    if status == ObservationStatus.PENDING_CLOSURE and observation.completed_at is None:
        problems.append("status=pending_closure requires completed_at")

    for action in observation.corrective_actions:
        if action.is_completed != (action.completed_date is not None):
            problems.append(f"action {action.id}: completed_date must be set iff completed")

    positions = [a.position for a in observation.corrective_actions]
    if positions != sorted(positions) or len(set(positions)) != len(positions):
        problems.append("corrective action positions must be unique and ordered")

    return problems


# =========================================================================
# Serialization
# =========================================================================


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value


def action_to_dict(action: CorrectiveAction) -> dict[str, Any]:
    return {
        "id": _plain(action.id),
        "action": action.action,
        "assigned_to": _plain(action.assigned_to),
        "position": action.position,
        "priority": _plain(action.priority),
        "due_date": _plain(action.due_date),
        "status": _plain(action.status),
        "started_at": _plain(action.started_at),
        "completed_date": _plain(action.completed_date),
        "completion_evidence": action.completion_evidence,
        "completion_comments": action.completion_comments,
        "lessons_learned": action.lessons_learned,
        "effectiveness_rating": action.effectiveness_rating,
        "evidence_photos": list(action.evidence_photos),
    }


def observation_to_dict(observation: Observation) -> dict[str, Any]:
    """JSON-safe snapshot for the API layer and notification payloads."""
    review = observation.review
    closure = observation.closure
    advisory = observation.advisory
    return {
        "id": _plain(observation.id),
        "report_number": observation.report_number,
        "company_id": _plain(observation.company_id),
        "plant_id": _plain(observation.plant_id),
        "area_id": _plain(observation.area_id),
        "observer_id": _plain(observation.observer_id),
        "observation_type": _plain(observation.observation_type),
        "severity": _plain(observation.severity),
        "status": _plain(observation.status),
        "category": observation.category,
        "description": observation.description,
        "observation_date": _plain(observation.observation_date),
        "location_area": observation.location_area,
        "specific_location": observation.specific_location,
        "immediate_action": observation.immediate_action,
        "root_cause": observation.root_cause,
        "corrective_actions": [action_to_dict(a) for a in observation.corrective_actions],
        "review": None if review is None else {
            "reviewed_by": _plain(review.reviewed_by),
            "reviewed_at": _plain(review.reviewed_at),
            "decision": _plain(review.decision),
            "comments": review.comments,
            "reassign_reason": review.reassign_reason,
        },
        "closure": None if closure is None else {
            "decided_by": _plain(closure.decided_by),
            "decided_at": _plain(closure.decided_at),
            "decision": _plain(closure.decision),
            "comments": closure.comments,
        },
        "completed_at": _plain(observation.completed_at),
        "completed_by": _plain(observation.completed_by),
        "advisory": None if advisory is None else {
            "source": advisory.source,
            "risk_level": _plain(advisory.risk_level),
            "risk_assessment": advisory.risk_assessment,
            "suggested_actions": list(advisory.suggested_actions),
            "confidence": advisory.confidence,
        },
        "version": observation.version,
        "created_at": _plain(observation.created_at),
        "updated_at": _plain(observation.updated_at),
    }
