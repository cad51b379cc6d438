"""
bbs_engines.lifecycle -- Pure observation state machine.

Responsibility:
    Given an authorized intent and the current observation snapshot,
    compute the next snapshot: attach review/closure records, append or
    advance corrective actions, and derive the aggregate status.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import bbs_kernel/domain/ types.  Time and id generation are
    injected (``now``, ``id_factory``).

Invariants enforced:
    - LC-1 (declared edges only): every produced (from, event, to) must be
      an edge of ``OBSERVATION_WORKFLOW``; anything else is rejected with
      INVALID_STATE and the snapshot is left unchanged.
    - LC-2 (all-completed rule): the aggregate enters pending_closure
      exactly when every corrective action is completed, evaluated over
      the whole collection of the snapshot being produced.
    - LC-3 (action monotonicity): action status never moves backwards.
    - Purity: returns a new frozen snapshot, never mutates the input.

Failure modes:
    - Returns ``LifecycleResult(error=...)`` for guard denials, payload
      problems and undeclared edges.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from bbs_kernel.domain.actor import Actor
from bbs_kernel.domain.intents import (
    ClosureIntent,
    CompleteActionIntent,
    EditIntent,
    Intent,
    ResubmitIntent,
    ReviewIntent,
    StartActionIntent,
    find_intent_problem,
)
from bbs_kernel.domain.observation import (
    ActionStatus,
    ClosureDecision,
    ClosureRecord,
    CorrectiveAction,
    Observation,
    ObservationStatus,
    ReviewDecision,
    ReviewRecord,
)
from bbs_kernel.domain.outcomes import LifecycleResult, TransitionError, TransitionErrorCode
from bbs_kernel.domain.roles import CapabilityMatrix
from bbs_kernel.domain.workflow import OBSERVATION_WORKFLOW
from bbs_engines.authorization import can_transition

IdFactory = Callable[[], UUID]
_Effect = tuple[Observation, dict[str, Any]]


def _mark_completed_if_done(observation: Observation, actor: Actor, now: datetime) -> Observation:
    if observation.all_actions_completed():
        return replace(
            observation,
            status=ObservationStatus.PENDING_CLOSURE,
            completed_at=now,
            completed_by=actor.actor_id,
        )
    return observation


def _replace_action(observation: Observation, updated: CorrectiveAction) -> Observation:
    return replace(
        observation,
        corrective_actions=tuple(
            updated if a.id == updated.id else a for a in observation.corrective_actions
        ),
    )


def _apply_review(
    observation: Observation, intent: ReviewIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    review = ReviewRecord(
        reviewed_by=actor.actor_id,
        reviewed_at=now,
        decision=intent.decision,
        comments=intent.comments,
        reassign_reason=intent.reassign_reason,
    )
    if intent.decision == ReviewDecision.REASSIGN:
        result = replace(observation, review=review, status=ObservationStatus.REASSIGNED)
        return result, {"reassign_reason": intent.reassign_reason}

    next_position = max((a.position for a in observation.corrective_actions), default=-1) + 1
    added = tuple(
        CorrectiveAction(
            id=id_factory(),
            action=spec.action,
            assigned_to=spec.assigned_to,
            position=next_position + i,
            priority=spec.priority,
            due_date=spec.due_date,
        )
        for i, spec in enumerate(intent.corrective_actions)
    )
    result = replace(
        observation,
        review=review,
        status=ObservationStatus.APPROVED,
        corrective_actions=observation.corrective_actions + added,
    )
    result = _mark_completed_if_done(result, actor, now)
    return result, {
        "actions_added": [str(a.id) for a in added],
        "assignees": sorted({str(a.assigned_to) for a in added}),
    }


def _apply_start(
    observation: Observation, intent: StartActionIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    action = observation.find_action(intent.action_id)
    started = replace(action, status=ActionStatus.IN_PROGRESS, started_at=now)
    return _replace_action(observation, started), {"action_id": str(action.id)}


def _apply_complete(
    observation: Observation, intent: CompleteActionIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    action = observation.find_action(intent.action_id)
    completed = replace(
        action,
        status=ActionStatus.COMPLETED,
        completed_date=now,
        completion_evidence=intent.completion_evidence,
        completion_comments=intent.completion_comments,
        lessons_learned=intent.lessons_learned,
        effectiveness_rating=intent.effectiveness_rating,
        evidence_photos=intent.evidence_photos,
    )
    result = _mark_completed_if_done(_replace_action(observation, completed), actor, now)
    return result, {
        "action_id": str(action.id),
        "previous_action_status": action.status.value,
        "all_actions_completed": result.status == ObservationStatus.PENDING_CLOSURE,
    }


def _apply_closure(
    observation: Observation, intent: ClosureIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    closure = ClosureRecord(
        decided_by=actor.actor_id,
        decided_at=now,
        decision=intent.decision,
        comments=intent.comments,
    )
    if intent.decision == ClosureDecision.APPROVE:
        status = ObservationStatus.CLOSED
    else:
        status = ObservationStatus.REASSIGNED
    return replace(observation, closure=closure, status=status), {"comments": intent.comments}


def _apply_edit(
    observation: Observation, intent: EditIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    changes = intent.changes.changed_fields()
    return replace(observation, **changes), {"changed_fields": sorted(changes)}


def _apply_resubmit(
    observation: Observation, intent: ResubmitIntent, actor: Actor, now: datetime, id_factory: IdFactory,
) -> _Effect:
    changes = intent.changes.changed_fields()
    result = replace(
        observation,
        status=ObservationStatus.OPEN,
        review=None,
        closure=None,
        completed_at=None,
        completed_by=None,
        **changes,
    )
    return result, {"changed_fields": sorted(changes), "comments": intent.comments}


_HANDLERS: dict[type, Callable[..., _Effect]] = {
    ReviewIntent: _apply_review,
    StartActionIntent: _apply_start,
    CompleteActionIntent: _apply_complete,
    ClosureIntent: _apply_closure,
    EditIntent: _apply_edit,
    ResubmitIntent: _apply_resubmit,
}


def apply_intent(
    observation: Observation,
    intent: Intent,
    *,
    actor: Actor,
    now: datetime,
    id_factory: IdFactory = uuid4,
) -> LifecycleResult:
    """Compute the next snapshot for an already-authorized intent.

    Args:
        observation: Current snapshot.
        intent: Typed, authorized intent.
        actor: The acting user (stamped on review/closure/completion).
        now: Transaction time.
        id_factory: Generates corrective action ids.

    Returns:
        LifecycleResult with the next snapshot, or an INVALID_STATE error
        if the computed edge is not declared.
    """
    event = intent.event.value
    handler = _HANDLERS.get(type(intent))
    if handler is None:
        return LifecycleResult(
            error=TransitionError(
                TransitionErrorCode.INVALID_PAYLOAD,
                f"Unsupported intent type {type(intent).__name__}",
            ),
            event=event,
        )

    from_status = observation.status
    next_observation, detail = handler(observation, intent, actor, now, id_factory)
    to_status = next_observation.status

    if not OBSERVATION_WORKFLOW.allows(from_status.value, event, to_status.value):
        return LifecycleResult(
            error=TransitionError(
                TransitionErrorCode.INVALID_STATE,
                f"Event {event} is not allowed from status {from_status.value}",
                "status",
                {"status": from_status.value, "target": to_status.value},
            ),
            from_status=from_status,
            to_status=from_status,
            event=event,
        )

    return LifecycleResult(
        observation=next_observation,
        from_status=from_status,
        to_status=to_status,
        event=event,
        detail=detail,
    )


class LifecycleEvaluator:
    """Guard + state machine, the ``TransitionEvaluator`` used by the store.

    Order: guard (closed-record precedence, capability, context, scope),
    then payload semantics, then the state machine.
    """

    def __init__(self, capabilities: CapabilityMatrix, id_factory: IdFactory = uuid4):
        self._capabilities = capabilities
        self._id_factory = id_factory

    @property
    def capabilities(self) -> CapabilityMatrix:
        return self._capabilities

    def evaluate(
        self,
        observation: Observation,
        actor: Actor,
        intent: Intent,
        now: datetime,
    ) -> LifecycleResult:
        event = intent.event.value
        decision = can_transition(actor, observation, intent, self._capabilities)
        if not decision.allowed:
            return LifecycleResult(
                error=decision.error,
                from_status=observation.status,
                to_status=observation.status,
                event=event,
            )

        problem = find_intent_problem(intent)
        if problem is not None:
            field_name, reason = problem
            return LifecycleResult(
                error=TransitionError(TransitionErrorCode.INVALID_PAYLOAD, reason, field_name),
                from_status=observation.status,
                to_status=observation.status,
                event=event,
            )

        return apply_intent(
            observation, intent, actor=actor, now=now, id_factory=self._id_factory,
        )
