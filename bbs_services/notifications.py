"""
bbs_services.notifications -- Post-commit notices.

Responsibility:
    Derive who needs to hear about a committed transition (reviewers,
    assignees, closers, the observer) and hand the notices to pluggable
    sinks.

Architecture position:
    Services layer.  Called by ``ObservationWorkflowService`` after the
    transition has committed and the aggregate lock is released, so a slow
    or failing sink never holds the lock or rolls back a transition.

Failure modes:
    - Sink exceptions are logged per sink and notice; delivery to the
      remaining sinks continues.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from bbs_kernel.domain.observation import ActionStatus, Observation, ObservationStatus
from bbs_kernel.domain.roles import Role
from bbs_kernel.domain.workflow import LifecycleEvent
from bbs_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NoticeKind(str, Enum):
    REVIEW_REQUIRED = "review_required"
    ACTION_ASSIGNED = "action_assigned"
    CLOSURE_REQUIRED = "closure_required"
    OBSERVATION_CLOSED = "observation_closed"
    OBSERVATION_REASSIGNED = "observation_reassigned"


@dataclass(frozen=True)
class Notice:
    """One message to deliver.  Addressed to users, roles, or both."""

    kind: NoticeKind
    observation_id: UUID
    report_number: str
    message: str
    recipient_ids: tuple[UUID, ...] = ()
    recipient_roles: tuple[Role, ...] = ()
    company_id: UUID | None = None
    plant_id: UUID | None = None
    detail: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def send(self, notice: Notice) -> None:
        ...


class LoggingNotificationSink:
    """Writes each notice to the structured log."""

    def send(self, notice: Notice) -> None:
        logger.info(
            "notification_dispatched",
            extra={
                "kind": notice.kind.value,
                "observation_id": str(notice.observation_id),
                "report_number": notice.report_number,
                "recipient_ids": [str(r) for r in notice.recipient_ids],
                "recipient_roles": [r.value for r in notice.recipient_roles],
            },
        )


class InMemoryNotificationSink:
    """Collects notices; used by tests and demos."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notices: list[Notice] = []

    def send(self, notice: Notice) -> None:
        with self._lock:
            self._notices.append(notice)

    @property
    def notices(self) -> list[Notice]:
        with self._lock:
            return list(self._notices)

    def of_kind(self, kind: NoticeKind) -> list[Notice]:
        return [n for n in self.notices if n.kind == kind]

    def clear(self) -> None:
        with self._lock:
            self._notices.clear()


_REVIEWERS = (Role.HOD, Role.PLANT_HEAD, Role.SAFETY_INCHARGE)
_CLOSERS = (Role.SAFETY_INCHARGE, Role.PLANT_HEAD)


def _notice(kind: NoticeKind, observation: Observation, message: str, **kwargs) -> Notice:
    return Notice(
        kind=kind,
        observation_id=observation.id,
        report_number=observation.report_number,
        message=message,
        company_id=observation.company_id,
        plant_id=observation.plant_id,
        **kwargs,
    )


def notices_for(event: str, observation: Observation) -> list[Notice]:
    """Notices implied by a committed event and the resulting snapshot.

    ``event`` is a ``LifecycleEvent`` value or ``observation.create``.
    """
    notices: list[Notice] = []
    number = observation.report_number

    if event == "observation.create" or (
        event == LifecycleEvent.RESUBMIT.value and observation.status == ObservationStatus.OPEN
    ):
        notices.append(_notice(
            NoticeKind.REVIEW_REQUIRED, observation,
            f"Observation {number} is awaiting review",
            recipient_roles=_REVIEWERS,
        ))

    if event == LifecycleEvent.REVIEW_APPROVE.value:
        # Actions from an earlier cycle are all completed; pending ones are new.
        by_assignee: dict[UUID, list[str]] = {}
        for action in observation.corrective_actions:
            if action.status == ActionStatus.PENDING:
                by_assignee.setdefault(action.assigned_to, []).append(str(action.id))
        for assignee, action_ids in by_assignee.items():
            notices.append(_notice(
                NoticeKind.ACTION_ASSIGNED, observation,
                f"{len(action_ids)} corrective action(s) assigned to you on {number}",
                recipient_ids=(assignee,),
                detail={"action_ids": action_ids},
            ))

    if observation.status == ObservationStatus.PENDING_CLOSURE and event in (
        LifecycleEvent.REVIEW_APPROVE.value,
        LifecycleEvent.ACTION_COMPLETE.value,
    ):
        notices.append(_notice(
            NoticeKind.CLOSURE_REQUIRED, observation,
            f"All corrective actions on {number} are complete; closure decision required",
            recipient_roles=_CLOSERS,
        ))

    if event == LifecycleEvent.CLOSURE_APPROVE.value:
        notices.append(_notice(
            NoticeKind.OBSERVATION_CLOSED, observation,
            f"Observation {number} has been closed",
            recipient_ids=(observation.observer_id,),
        ))

    if observation.status == ObservationStatus.REASSIGNED and event in (
        LifecycleEvent.REVIEW_REASSIGN.value,
        LifecycleEvent.CLOSURE_REJECT.value,
    ):
        reason = (
            observation.review.reassign_reason
            if event == LifecycleEvent.REVIEW_REASSIGN.value and observation.review
            else (observation.closure.comments if observation.closure else "")
        )
        notices.append(_notice(
            NoticeKind.OBSERVATION_REASSIGNED, observation,
            f"Observation {number} was sent back: {reason}",
            recipient_ids=(observation.observer_id,),
            detail={"event": event},
        ))

    return notices


def dispatch_notices(sinks: Iterable[NotificationSink], notices: Iterable[Notice]) -> int:
    """Deliver every notice to every sink.  Returns successful deliveries."""
    delivered = 0
    sinks = list(sinks)
    for notice in notices:
        for sink in sinks:
            try:
                sink.send(notice)
                delivered += 1
            except Exception:
                logger.warning(
                    "notification_failed",
                    extra={
                        "sink": type(sink).__name__,
                        "kind": notice.kind.value,
                        "observation_id": str(notice.observation_id),
                    },
                    exc_info=True,
                )
    return delivered
