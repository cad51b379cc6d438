"""
bbs_engines.authorization -- Pure authorization guard.

Responsibility:
    Decide whether an actor may apply an intent to a specific observation,
    combining the role capability matrix with record-specific context
    (assignee, observer, status) and organisational scope.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import bbs_kernel/domain/ types.

Invariants enforced:
    - AG-0 (closed precedence): a closed observation accepts no intent;
      every intent on it is rejected with INVALID_STATE before any other
      check runs.
    - AG-1 (ordered checks): capability, then context, then scope.  The
      first failing check determines the error code.
    - AG-2 (company isolation): company_id must match for every role;
      only company_owner is exempt from the plant match.
    - Purity: never mutates, never reads a clock.

Failure modes:
    - Returns ``GuardDecision.deny(...)``; never raises for a business
      rejection.
"""

from __future__ import annotations

from uuid import UUID

from bbs_kernel.domain.actor import Actor
from bbs_kernel.domain.intents import (
    ClosureIntent,
    CompleteActionIntent,
    EditIntent,
    Intent,
    ResubmitIntent,
    ReviewIntent,
    StartActionIntent,
)
from bbs_kernel.domain.observation import ActionStatus, Observation, ObservationStatus
from bbs_kernel.domain.outcomes import GuardDecision, TransitionErrorCode
from bbs_kernel.domain.roles import BBS_MODULE, CapabilityCategory, CapabilityMatrix, Role

REVIEWER_ROLES: frozenset[Role] = frozenset({
    Role.HOD,
    Role.PLANT_HEAD,
    Role.SAFETY_INCHARGE,
})

CLOSER_ROLES: frozenset[Role] = frozenset({
    Role.SAFETY_INCHARGE,
    Role.PLANT_HEAD,
})

EDIT_OVERRIDE_ROLES: frozenset[Role] = frozenset({
    Role.PLANT_HEAD,
    Role.SAFETY_INCHARGE,
})

# Roles whose scope spans every plant of their company.
GLOBAL_SCOPE_ROLES: frozenset[Role] = frozenset({
    Role.COMPANY_OWNER,
})

# Corrective-action intents are gated by assignment, not by a category.
INTENT_CAPABILITY: dict[type, CapabilityCategory | None] = {
    ReviewIntent: CapabilityCategory.REVIEW,
    ClosureIntent: CapabilityCategory.APPROVE,
    EditIntent: CapabilityCategory.EDIT,
    ResubmitIntent: CapabilityCategory.EDIT,
    StartActionIntent: None,
    CompleteActionIntent: None,
}


def _deny(code: TransitionErrorCode, message: str, field: str | None = None, **detail) -> GuardDecision:
    return GuardDecision.deny(code, message, field, **detail)


def check_scope(actor: Actor, company_id: UUID, plant_id: UUID | None) -> GuardDecision:
    """Organisational scope: same company always, same plant unless global."""
    if actor.company_id != company_id:
        return _deny(
            TransitionErrorCode.SCOPE_MISMATCH,
            "Observation belongs to a different company",
            "company_id",
        )
    if actor.role in GLOBAL_SCOPE_ROLES:
        return GuardDecision.allow()
    if actor.plant_id is None or actor.plant_id != plant_id:
        return _deny(
            TransitionErrorCode.SCOPE_MISMATCH,
            "Observation belongs to a different plant",
            "plant_id",
        )
    return GuardDecision.allow()


def _check_editor(
    actor: Actor,
    observation: Observation,
    allowed_status: ObservationStatus,
    verb: str,
) -> GuardDecision:
    is_observer = actor.actor_id == observation.observer_id
    if actor.role in EDIT_OVERRIDE_ROLES:
        return GuardDecision.allow()
    if not is_observer:
        return _deny(
            TransitionErrorCode.INSUFFICIENT_ROLE,
            f"Only the observer or a plant head / safety in-charge may {verb} this observation",
            required_roles=sorted(r.value for r in EDIT_OVERRIDE_ROLES),
        )
    if observation.status != allowed_status:
        return _deny(
            TransitionErrorCode.INVALID_STATE,
            f"The observer may only {verb} an observation that is {allowed_status.value}",
            "status",
            status=observation.status.value,
        )
    return GuardDecision.allow()


def _check_context(actor: Actor, observation: Observation, intent: Intent) -> GuardDecision:
    status = observation.status

    if isinstance(intent, ReviewIntent):
        if actor.role not in REVIEWER_ROLES:
            return _deny(
                TransitionErrorCode.INSUFFICIENT_ROLE,
                "Only HOD, plant head or safety in-charge can review observations",
                required_roles=sorted(r.value for r in REVIEWER_ROLES),
            )
        if status != ObservationStatus.OPEN:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                f"Observation has already been reviewed (status {status.value})",
                "status",
                status=status.value,
            )
        return GuardDecision.allow()

    if isinstance(intent, (StartActionIntent, CompleteActionIntent)):
        action = observation.find_action(intent.action_id)
        if action is None:
            return _deny(
                TransitionErrorCode.NOT_FOUND,
                "Corrective action not found on this observation",
                "action_id",
                action_id=str(intent.action_id),
            )
        if action.assigned_to != actor.actor_id:
            return _deny(
                TransitionErrorCode.NOT_ASSIGNEE,
                "You can only update actions assigned to you",
                "action_id",
                action_id=str(action.id),
            )
        if action.status == ActionStatus.COMPLETED:
            return _deny(
                TransitionErrorCode.ALREADY_COMPLETED,
                "Corrective action is already completed",
                "action_id",
                action_id=str(action.id),
            )
        if isinstance(intent, StartActionIntent) and action.status != ActionStatus.PENDING:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                f"Corrective action is already {action.status.value}",
                "action_id",
                action_id=str(action.id),
                action_status=action.status.value,
            )
        if status != ObservationStatus.APPROVED:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                f"Corrective actions cannot be updated while observation is {status.value}",
                "status",
                status=status.value,
            )
        return GuardDecision.allow()

    if isinstance(intent, ClosureIntent):
        if actor.role not in CLOSER_ROLES:
            return _deny(
                TransitionErrorCode.INSUFFICIENT_ROLE,
                "Only safety in-charge or plant head can close observations",
                required_roles=sorted(r.value for r in CLOSER_ROLES),
            )
        if status != ObservationStatus.PENDING_CLOSURE:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                f"Observation is not pending closure (status {status.value})",
                "status",
                status=status.value,
            )
        return GuardDecision.allow()

    if isinstance(intent, EditIntent):
        decision = _check_editor(actor, observation, ObservationStatus.OPEN, "edit")
        if not decision.allowed:
            return decision
        if intent.changes.severity is not None and status != ObservationStatus.OPEN:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                "Severity can only be changed while the observation is open",
                "severity",
                status=status.value,
            )
        return GuardDecision.allow()

    if isinstance(intent, ResubmitIntent):
        decision = _check_editor(actor, observation, ObservationStatus.REASSIGNED, "resubmit")
        if not decision.allowed:
            return decision
        if status != ObservationStatus.REASSIGNED:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                f"Only reassigned observations can be resubmitted (status {status.value})",
                "status",
                status=status.value,
            )
        if intent.changes.severity is not None:
            return _deny(
                TransitionErrorCode.INVALID_STATE,
                "Severity can only be changed while the observation is open",
                "severity",
                status=status.value,
            )
        return GuardDecision.allow()

    return _deny(
        TransitionErrorCode.INVALID_PAYLOAD,
        f"Unsupported intent type {type(intent).__name__}",
    )


def can_transition(
    actor: Actor,
    observation: Observation,
    intent: Intent,
    capabilities: CapabilityMatrix,
) -> GuardDecision:
    """Evaluate the ordered guard rules for one intent.

    Args:
        actor: Resolved actor (role and scope from the identity provider).
        observation: Current snapshot, read inside the serialized section.
        intent: Typed intent.
        capabilities: Role capability matrix.

    Returns:
        ``GuardDecision.allow()`` or a denial carrying the first failing
        check's ``TransitionError``.
    """
    if observation.is_closed:
        return _deny(
            TransitionErrorCode.INVALID_STATE,
            "Observation is closed and can no longer be changed",
            "status",
            status=observation.status.value,
        )

    category = INTENT_CAPABILITY.get(type(intent))
    if category is not None and not capabilities.has_capability(actor.role, category, BBS_MODULE):
        return _deny(
            TransitionErrorCode.INSUFFICIENT_ROLE,
            f"Role {actor.role.value} lacks the '{category.value}' capability",
            category=category.value,
            role=actor.role.value,
        )

    decision = _check_context(actor, observation, intent)
    if not decision.allowed:
        return decision

    return check_scope(actor, observation.company_id, observation.plant_id)


def can_create(
    actor: Actor,
    plant_id: UUID | None,
    capabilities: CapabilityMatrix,
) -> GuardDecision:
    """Creation guard: ``create`` capability plus plant scope."""
    if not capabilities.has_capability(actor.role, CapabilityCategory.CREATE, BBS_MODULE):
        return _deny(
            TransitionErrorCode.INSUFFICIENT_ROLE,
            f"Role {actor.role.value} cannot create observations",
            category=CapabilityCategory.CREATE.value,
            role=actor.role.value,
        )
    if plant_id is None:
        return _deny(
            TransitionErrorCode.INVALID_PAYLOAD,
            "A plant is required to create an observation",
            "plant_id",
        )
    return check_scope(actor, actor.company_id, plant_id)


def can_view(
    actor: Actor,
    observation: Observation,
    capabilities: CapabilityMatrix,
) -> GuardDecision:
    """Read guard driven by the ``view`` scopes of the matrix.

    ``all`` spans the company; ``plant_observations`` the actor's plant;
    ``area_observations`` the actor's area plus their own reports;
    ``own_observations`` only reports the actor filed.
    """
    if actor.company_id != observation.company_id:
        return _deny(
            TransitionErrorCode.SCOPE_MISMATCH,
            "Observation belongs to a different company",
            "company_id",
        )
    scopes = set(capabilities.scopes(actor.role, CapabilityCategory.VIEW, BBS_MODULE))
    is_observer = actor.actor_id == observation.observer_id
    if "all" in scopes:
        return GuardDecision.allow()
    if "plant_observations" in scopes and actor.plant_id == observation.plant_id:
        return GuardDecision.allow()
    if "area_observations" in scopes and (
        is_observer
        or (actor.area_id is not None and actor.area_id == observation.area_id)
    ):
        return GuardDecision.allow()
    if "own_observations" in scopes and is_observer:
        return GuardDecision.allow()
    if not scopes:
        return _deny(
            TransitionErrorCode.INSUFFICIENT_ROLE,
            f"Role {actor.role.value} cannot view observations",
        )
    return _deny(
        TransitionErrorCode.SCOPE_MISMATCH,
        "Observation is outside your view scope",
        scopes=sorted(scopes),
    )
