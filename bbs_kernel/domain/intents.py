"""
Workflow intents (``bbs_kernel.domain.intents``).

Responsibility
--------------
One frozen payload type per workflow event, and the boundary parser that
turns an event name plus an untyped payload (as received from the API
layer) into exactly one of them.  Structural problems are rejected here;
semantic ones are reported by ``find_intent_problem`` after the guard.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and parsing.  ZERO I/O.

Invariants enforced
-------------------
* IN-1: Every ``LifecycleEvent`` maps to exactly one intent type
  (``INTENT_TYPES``) and every intent reports its ``event``.
* IN-2: Immutable observation fields (id, report number, type, observer)
  are not expressible in any intent.

Failure modes
-------------
* ``MalformedIntentError`` from ``parse_intent`` / ``validate_intent``
  with the offending field name.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Union
from uuid import UUID

from bbs_kernel.domain.observation import (
    MAX_EFFECTIVENESS_RATING,
    MIN_EFFECTIVENESS_RATING,
    ClosureDecision,
    Priority,
    ReviewDecision,
    Severity,
)
from bbs_kernel.domain.workflow import LifecycleEvent
from bbs_kernel.exceptions import MalformedIntentError


class IntentKind(str, Enum):
    REVIEW = "review"
    ACTION_START = "action_start"
    ACTION_COMPLETE = "action_complete"
    CLOSURE = "closure"
    EDIT = "edit"
    RESUBMIT = "resubmit"


# =========================================================================
# Payload types
# =========================================================================


@dataclass(frozen=True)
class CorrectiveActionSpec:
    """A corrective action to be appended by an approving review."""

    action: str
    assigned_to: UUID
    due_date: date | None = None
    priority: Priority = Priority.MEDIUM


@dataclass(frozen=True)
class ReviewIntent:
    decision: ReviewDecision
    comments: str = ""
    corrective_actions: tuple[CorrectiveActionSpec, ...] = ()
    reassign_reason: str | None = None

    kind: ClassVar[IntentKind] = IntentKind.REVIEW

    @property
    def event(self) -> LifecycleEvent:
        if self.decision == ReviewDecision.APPROVE:
            return LifecycleEvent.REVIEW_APPROVE
        return LifecycleEvent.REVIEW_REASSIGN


@dataclass(frozen=True)
class StartActionIntent:
    action_id: UUID

    kind: ClassVar[IntentKind] = IntentKind.ACTION_START

    @property
    def event(self) -> LifecycleEvent:
        return LifecycleEvent.ACTION_START


@dataclass(frozen=True)
class CompleteActionIntent:
    action_id: UUID
    completion_evidence: str = ""
    effectiveness_rating: int | None = None
    completion_comments: str = ""
    lessons_learned: str = ""
    evidence_photos: tuple[str, ...] = ()

    kind: ClassVar[IntentKind] = IntentKind.ACTION_COMPLETE

    @property
    def event(self) -> LifecycleEvent:
        return LifecycleEvent.ACTION_COMPLETE


@dataclass(frozen=True)
class ClosureIntent:
    decision: ClosureDecision
    comments: str = ""

    kind: ClassVar[IntentKind] = IntentKind.CLOSURE

    @property
    def event(self) -> LifecycleEvent:
        if self.decision == ClosureDecision.APPROVE:
            return LifecycleEvent.CLOSURE_APPROVE
        return LifecycleEvent.CLOSURE_REJECT


@dataclass(frozen=True)
class ObservationEdit:
    """Mutable observation fields.  None means "leave unchanged"."""

    severity: Severity | None = None
    category: str | None = None
    description: str | None = None
    area_id: UUID | None = None
    location_area: str | None = None
    specific_location: str | None = None
    immediate_action: str | None = None
    root_cause: str | None = None

    def changed_fields(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class EditIntent:
    changes: ObservationEdit

    kind: ClassVar[IntentKind] = IntentKind.EDIT

    @property
    def event(self) -> LifecycleEvent:
        return LifecycleEvent.EDIT


@dataclass(frozen=True)
class ResubmitIntent:
    comments: str = ""
    changes: ObservationEdit = ObservationEdit()

    kind: ClassVar[IntentKind] = IntentKind.RESUBMIT

    @property
    def event(self) -> LifecycleEvent:
        return LifecycleEvent.RESUBMIT


Intent = Union[
    ReviewIntent,
    StartActionIntent,
    CompleteActionIntent,
    ClosureIntent,
    EditIntent,
    ResubmitIntent,
]

INTENT_TYPES: dict[LifecycleEvent, type] = {
    LifecycleEvent.REVIEW_APPROVE: ReviewIntent,
    LifecycleEvent.REVIEW_REASSIGN: ReviewIntent,
    LifecycleEvent.ACTION_START: StartActionIntent,
    LifecycleEvent.ACTION_COMPLETE: CompleteActionIntent,
    LifecycleEvent.CLOSURE_APPROVE: ClosureIntent,
    LifecycleEvent.CLOSURE_REJECT: ClosureIntent,
    LifecycleEvent.EDIT: EditIntent,
    LifecycleEvent.RESUBMIT: ResubmitIntent,
}


# =========================================================================
# Semantic validation
# =========================================================================


def find_intent_problem(intent: Intent) -> tuple[str | None, str] | None:
    """Return ``(field, reason)`` for the first problem, or None if valid."""
    if isinstance(intent, ReviewIntent):
        if intent.decision == ReviewDecision.REASSIGN:
            if not (intent.reassign_reason or "").strip():
                return ("reassign_reason", "a reassign decision requires a reason")
            if intent.corrective_actions:
                return ("corrective_actions", "a reassign decision cannot assign actions")
        for i, spec in enumerate(intent.corrective_actions):
            if not spec.action.strip():
                return (f"corrective_actions[{i}].action", "action text is required")
        return None

    if isinstance(intent, CompleteActionIntent):
        rating = intent.effectiveness_rating
        if rating is not None and not (
            MIN_EFFECTIVENESS_RATING <= rating <= MAX_EFFECTIVENESS_RATING
        ):
            return (
                "effectiveness_rating",
                f"must be between {MIN_EFFECTIVENESS_RATING} and {MAX_EFFECTIVENESS_RATING}",
            )
        return None

    if isinstance(intent, ClosureIntent):
        if intent.decision == ClosureDecision.REJECT and not intent.comments.strip():
            return ("comments", "a rejected closure requires comments")
        return None

    if isinstance(intent, EditIntent):
        if not intent.changes.changed_fields():
            return ("changes", "an edit must change at least one field")
        return None

    if isinstance(intent, (StartActionIntent, ResubmitIntent)):
        return None

    return (None, f"unsupported intent type {type(intent).__name__}")


def validate_intent(intent: Intent) -> Intent:
    """Raise ``MalformedIntentError`` if the intent is semantically invalid."""
    problem = find_intent_problem(intent)
    if problem is not None:
        field_name, reason = problem
        event = getattr(intent, "event", None)
        raise MalformedIntentError(
            event.value if event is not None else type(intent).__name__,
            field_name,
            reason,
        )
    return intent


# =========================================================================
# Boundary parsing
# =========================================================================

_CAMEL_BOUNDARY = re.compile(r"_([a-z])")


def _camel(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: m.group(1).upper(), name)


class _Payload:
    """Typed accessors over an untyped payload, keyed by snake or camel case."""

    def __init__(self, event: str, data: Mapping[str, Any] | None, prefix: str = ""):
        self._event = event
        self._data = data or {}
        self._prefix = prefix

    def _field(self, name: str) -> str:
        return f"{self._prefix}{name}"

    def raw(self, name: str) -> Any:
        if name in self._data:
            return self._data[name]
        return self._data.get(_camel(name))

    def fail(self, name: str | None, reason: str) -> MalformedIntentError:
        return MalformedIntentError(
            self._event, self._field(name) if name else None, reason,
        )

    def text(self, name: str, *, required: bool = False) -> str | None:
        value = self.raw(name)
        if value is None:
            if required:
                raise self.fail(name, "is required")
            return None
        if not isinstance(value, str):
            raise self.fail(name, "must be a string")
        return value

    def uuid(self, name: str, *, required: bool = False) -> UUID | None:
        value = self.raw(name)
        if value is None:
            if required:
                raise self.fail(name, "is required")
            return None
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise self.fail(name, f"not a valid id: {value!r}") from None

    def day(self, name: str) -> date | None:
        value = self.raw(name)
        if value is None or isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                pass
        raise self.fail(name, f"not an ISO date: {value!r}")

    def integer(self, name: str) -> int | None:
        value = self.raw(name)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise self.fail(name, "must be an integer")
        try:
            return int(value)
        except ValueError:
            raise self.fail(name, "must be an integer") from None

    def choice(self, name: str, enum_type: type[Enum], *, required: bool = False):
        value = self.raw(name)
        if value is None:
            if required:
                raise self.fail(name, "is required")
            return None
        try:
            return enum_type(value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_type)
            raise self.fail(name, f"must be one of: {allowed}") from None

    def strings(self, name: str) -> tuple[str, ...]:
        value = self.raw(name)
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,) if value else ()
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise self.fail(name, "must be a list of strings")
        return tuple(value)

    def records(self, name: str) -> list["_Payload"]:
        value = self.raw(name)
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise self.fail(name, "must be a list")
        result = []
        for i, item in enumerate(value):
            if not isinstance(item, Mapping):
                raise self.fail(f"{name}[{i}]", "must be an object")
            result.append(_Payload(self._event, item, prefix=self._field(f"{name}[{i}].")))
        return result


def _parse_edit(p: _Payload) -> ObservationEdit:
    return ObservationEdit(
        severity=p.choice("severity", Severity),
        category=p.text("category"),
        description=p.text("description"),
        area_id=p.uuid("area_id"),
        location_area=p.text("location_area"),
        specific_location=p.text("specific_location"),
        immediate_action=p.text("immediate_action"),
        root_cause=p.text("root_cause"),
    )


def parse_intent(event: str, payload: Mapping[str, Any] | None = None) -> Intent:
    """Parse an event name and untyped payload into a typed intent.

    Only structure is checked here.  Semantic problems (see
    ``find_intent_problem``) are reported after the authorization guard,
    so a closed observation or a missing capability wins over a bad payload.

    Raises:
        MalformedIntentError: unknown event, wrong field type or missing
            required field.
    """
    try:
        lifecycle_event = LifecycleEvent(event)
    except ValueError:
        allowed = ", ".join(e.value for e in LifecycleEvent)
        raise MalformedIntentError(str(event), None, f"unknown event; expected one of: {allowed}") from None

    if payload is not None and not isinstance(payload, Mapping):
        raise MalformedIntentError(event, None, "payload must be an object")

    p = _Payload(event, payload)
    intent: Intent

    if lifecycle_event in (LifecycleEvent.REVIEW_APPROVE, LifecycleEvent.REVIEW_REASSIGN):
        specs = tuple(
            CorrectiveActionSpec(
                action=item.text("action", required=True),
                assigned_to=item.uuid("assigned_to", required=True),
                due_date=item.day("due_date"),
                priority=item.choice("priority", Priority) or Priority.MEDIUM,
            )
            for item in p.records("corrective_actions")
        )
        intent = ReviewIntent(
            decision=(
                ReviewDecision.APPROVE
                if lifecycle_event == LifecycleEvent.REVIEW_APPROVE
                else ReviewDecision.REASSIGN
            ),
            comments=p.text("comments") or p.text("review_comments") or "",
            corrective_actions=specs,
            reassign_reason=p.text("reassign_reason"),
        )
    elif lifecycle_event == LifecycleEvent.ACTION_START:
        intent = StartActionIntent(action_id=p.uuid("action_id", required=True))
    elif lifecycle_event == LifecycleEvent.ACTION_COMPLETE:
        intent = CompleteActionIntent(
            action_id=p.uuid("action_id", required=True),
            completion_evidence=p.text("completion_evidence") or "",
            effectiveness_rating=p.integer("effectiveness_rating"),
            completion_comments=p.text("completion_comments") or "",
            lessons_learned=p.text("lessons_learned") or "",
            evidence_photos=p.strings("evidence_photos"),
        )
    elif lifecycle_event in (LifecycleEvent.CLOSURE_APPROVE, LifecycleEvent.CLOSURE_REJECT):
        intent = ClosureIntent(
            decision=(
                ClosureDecision.APPROVE
                if lifecycle_event == LifecycleEvent.CLOSURE_APPROVE
                else ClosureDecision.REJECT
            ),
            comments=p.text("comments") or p.text("closure_comments") or "",
        )
    elif lifecycle_event == LifecycleEvent.EDIT:
        intent = EditIntent(changes=_parse_edit(p))
    elif lifecycle_event == LifecycleEvent.RESUBMIT:
        intent = ResubmitIntent(comments=p.text("comments") or "", changes=_parse_edit(p))
    else:  # pragma: no cover - LifecycleEvent is closed
        raise MalformedIntentError(event, None, "unhandled event")

    return intent
