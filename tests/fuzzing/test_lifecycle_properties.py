"""
Hypothesis-based property tests for the guard and the state machine.

Properties checked over generated inputs:
- Status edges: every committed status change is a declared edge.
- Action monotonicity: a corrective action never leaves ``completed``
  and never returns to ``pending``.
- Closure eligibility: ``pending_closure`` is entered exactly when every
  corrective action is completed, and only once per approval cycle.
- Closed immutability: once closed, every intent is rejected with
  INVALID_STATE and the snapshot no longer changes.
- Guard soundness: ``can_transition`` allows exactly the (role, status,
  relationship, intent) combinations an independent oracle allows.

Everything here runs against the pure engines; no database.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from bbs_config import get_active_config
from bbs_engines.authorization import can_transition
from bbs_engines.lifecycle import LifecycleEvaluator
from bbs_kernel.domain.actor import Actor
from bbs_kernel.domain.intents import (
    ClosureIntent,
    CompleteActionIntent,
    CorrectiveActionSpec,
    EditIntent,
    ObservationEdit,
    ResubmitIntent,
    ReviewIntent,
    StartActionIntent,
)
from bbs_kernel.domain.observation import (
    OBSERVATION_TRANSITIONS,
    ActionStatus,
    ClosureDecision,
    ClosureRecord,
    CorrectiveAction,
    Observation,
    ObservationStatus,
    ObservationType,
    ReviewDecision,
    ReviewRecord,
    Severity,
    check_consistency,
)
from bbs_kernel.domain.outcomes import TransitionErrorCode
from bbs_kernel.domain.roles import Role
from bbs_kernel.domain.workflow import OBSERVATION_WORKFLOW

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
CAPABILITIES = get_active_config().capability_matrix
COMPANY = uuid4()
OTHER_COMPANY = uuid4()
PLANT = uuid4()
OTHER_PLANT = uuid4()


def _actor(role: Role, plant=PLANT, company=COMPANY) -> Actor:
    return Actor(
        actor_id=uuid4(),
        role=role,
        company_id=company,
        plant_id=None if role == Role.COMPANY_OWNER else plant,
        name=role.value,
    )


OBSERVER = _actor(Role.WORKER)
WORKER2 = _actor(Role.WORKER)
ACTORS = {
    "observer": OBSERVER,
    "worker2": WORKER2,
    "contractor": _actor(Role.CONTRACTOR),
    "hod": _actor(Role.HOD),
    "safety": _actor(Role.SAFETY_INCHARGE),
    "plant_head": _actor(Role.PLANT_HEAD),
    "owner": _actor(Role.COMPANY_OWNER),
    "other_plant_safety": _actor(Role.SAFETY_INCHARGE, plant=OTHER_PLANT),
}


def _open_observation() -> Observation:
    return Observation(
        id=uuid4(),
        report_number="BBS24010101",
        company_id=COMPANY,
        plant_id=PLANT,
        observer_id=OBSERVER.actor_id,
        observation_type=ObservationType.UNSAFE_ACT,
        severity=Severity.MEDIUM,
        status=ObservationStatus.OPEN,
        category="ppe",
        description="No helmet in the crane bay",
        observation_date=T0,
        created_at=T0,
        updated_at=T0,
    )


# =============================================================================
# Random intent sequences
# =============================================================================

_STEP_KINDS = (
    "approve", "reassign", "start", "complete",
    "close", "reject", "edit", "edit_severity", "resubmit",
)

steps = st.lists(
    st.tuples(
        st.sampled_from(_STEP_KINDS),
        st.sampled_from(sorted(ACTORS)),
        st.integers(min_value=0, max_value=3),
        st.lists(st.sampled_from(["observer", "worker2"]), max_size=3),
    ),
    min_size=1,
    max_size=30,
)


def _build_intent(kind, observation, index, assignee_names):
    actions = observation.corrective_actions
    action_id = actions[index % len(actions)].id if actions and index < 3 else uuid4()
    if kind == "approve":
        return ReviewIntent(
            ReviewDecision.APPROVE,
            corrective_actions=tuple(
                CorrectiveActionSpec(f"Action {i}", ACTORS[name].actor_id)
                for i, name in enumerate(assignee_names)
            ),
        )
    if kind == "reassign":
        return ReviewIntent(ReviewDecision.REASSIGN, reassign_reason="Missing details")
    if kind == "start":
        return StartActionIntent(action_id)
    if kind == "complete":
        return CompleteActionIntent(action_id, completion_evidence="done", effectiveness_rating=4)
    if kind == "close":
        return ClosureIntent(ClosureDecision.APPROVE, "verified")
    if kind == "reject":
        return ClosureIntent(ClosureDecision.REJECT, "not effective")
    if kind == "edit":
        return EditIntent(ObservationEdit(root_cause="Fatigue"))
    if kind == "edit_severity":
        return EditIntent(ObservationEdit(severity=Severity.HIGH))
    return ResubmitIntent(comments="added details")


@settings(max_examples=300, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(sequence=steps)
def test_random_sequences_preserve_lifecycle_invariants(sequence):
    evaluator = LifecycleEvaluator(CAPABILITIES)
    observation = _open_observation()
    now = T0
    pending_entries = 0
    approvals = 0

    for kind, actor_name, index, assignees in sequence:
        now += timedelta(minutes=1)
        intent = _build_intent(kind, observation, index, assignees)
        result = evaluator.evaluate(observation, ACTORS[actor_name], intent, now)

        if not result.is_success:
            assert result.observation is None
            assert result.error is not None
            if observation.status == ObservationStatus.CLOSED:
                assert result.error.code == TransitionErrorCode.INVALID_STATE
            continue

        before, after = observation, result.observation

        # Declared edges only
        assert after.status in OBSERVATION_TRANSITIONS[before.status]
        assert OBSERVATION_WORKFLOW.allows(before.status.value, intent.event.value, after.status.value)
        assert before.status != ObservationStatus.CLOSED

        # Action monotonicity and ownership
        previous = {a.id: a for a in before.corrective_actions}
        assert set(previous) <= {a.id for a in after.corrective_actions}
        for action in after.corrective_actions:
            old = previous.get(action.id)
            if old is None:
                assert action.status == ActionStatus.PENDING
                continue
            if old.status == ActionStatus.COMPLETED:
                assert action == old
            if old.status == ActionStatus.IN_PROGRESS:
                assert action.status != ActionStatus.PENDING

        # Identity fields never change
        assert (after.id, after.report_number, after.observer_id, after.observation_type) == (
            before.id, before.report_number, before.observer_id, before.observation_type,
        )

        # Closure eligibility
        if after.status == ObservationStatus.PENDING_CLOSURE and before.status != after.status:
            assert after.all_actions_completed()
            assert after.completed_at == now
            pending_entries += 1
        if after.status == ObservationStatus.APPROVED:
            assert not after.all_actions_completed()
        if intent.event.value == "review.approve":
            approvals += 1

        assert check_consistency(after) == []
        observation = after

    assert pending_entries <= approvals


@settings(max_examples=100, deadline=None)
@given(
    kind=st.sampled_from(_STEP_KINDS),
    actor_name=st.sampled_from(sorted(ACTORS)),
)
def test_closed_observation_rejects_every_intent(kind, actor_name):
    evaluator = LifecycleEvaluator(CAPABILITIES)
    observation = _snapshot(ObservationStatus.CLOSED, ActionStatus.COMPLETED)
    intent = _build_intent(kind, observation, 0, ["observer"])

    result = evaluator.evaluate(observation, ACTORS[actor_name], intent, T0)

    assert result.error.code == TransitionErrorCode.INVALID_STATE
    assert result.observation is None


# =============================================================================
# Guard soundness
# =============================================================================

_REVIEWERS = {Role.HOD, Role.PLANT_HEAD, Role.SAFETY_INCHARGE}
_CLOSERS = {Role.SAFETY_INCHARGE, Role.PLANT_HEAD}
_OVERRIDE = {Role.PLANT_HEAD, Role.SAFETY_INCHARGE}
_CAN_REVIEW = {Role.COMPANY_OWNER, Role.PLANT_HEAD, Role.SAFETY_INCHARGE, Role.HOD}
_CAN_CLOSE = {Role.COMPANY_OWNER, Role.PLANT_HEAD, Role.SAFETY_INCHARGE}

_GUARD_KINDS = ("approve", "reassign", "start", "complete", "close", "reject",
                "edit", "edit_severity", "resubmit")


def _snapshot(status: ObservationStatus, target_status: ActionStatus, assignee=None) -> Observation:
    """A consistent snapshot in ``status``; the first action has ``target_status``."""
    assignee = assignee or WORKER2.actor_id
    obs = _open_observation()
    if status == ObservationStatus.OPEN:
        return obs

    approve = ReviewRecord(uuid4(), T0, ReviewDecision.APPROVE)
    if status == ObservationStatus.REASSIGNED:
        return replace(obs, status=status, review=ReviewRecord(
            uuid4(), T0, ReviewDecision.REASSIGN, reassign_reason="details",
        ))

    def action(position, action_status):
        done = action_status == ActionStatus.COMPLETED
        return CorrectiveAction(
            id=uuid4(),
            action=f"Action {position}",
            assigned_to=assignee if position == 0 else uuid4(),
            position=position,
            status=action_status,
            completed_date=T0 if done else None,
        )

    if status == ObservationStatus.APPROVED:
        # the second action keeps the aggregate below closure eligibility
        actions = (action(0, target_status), action(1, ActionStatus.PENDING))
        return replace(obs, status=status, review=approve, corrective_actions=actions)

    actions = (action(0, ActionStatus.COMPLETED),)
    obs = replace(obs, status=status, review=approve, corrective_actions=actions, completed_at=T0)
    if status == ObservationStatus.CLOSED:
        obs = replace(obs, closure=ClosureRecord(uuid4(), T0, ClosureDecision.APPROVE))
    return obs


def _oracle(role, status, kind, is_observer, is_assignee, action_status, same_plant, same_company):
    """Independent statement of the authorization rules."""
    if status == ObservationStatus.CLOSED:
        return False
    if not same_company:
        return False
    in_scope = same_plant or role == Role.COMPANY_OWNER

    if kind in ("approve", "reassign"):
        allowed = role in _CAN_REVIEW and role in _REVIEWERS and status == ObservationStatus.OPEN
    elif kind == "start":
        allowed = (
            is_assignee
            and action_status == ActionStatus.PENDING
            and status == ObservationStatus.APPROVED
        )
    elif kind == "complete":
        allowed = (
            is_assignee
            and action_status != ActionStatus.COMPLETED
            and status == ObservationStatus.APPROVED
        )
    elif kind in ("close", "reject"):
        allowed = role in _CAN_CLOSE and role in _CLOSERS and status == ObservationStatus.PENDING_CLOSURE
    elif kind in ("edit", "edit_severity"):
        allowed = role in _OVERRIDE or (is_observer and status == ObservationStatus.OPEN)
        if kind == "edit_severity":
            allowed = allowed and status == ObservationStatus.OPEN
    else:  # resubmit
        allowed = (role in _OVERRIDE or is_observer) and status == ObservationStatus.REASSIGNED
    return allowed and in_scope


@settings(max_examples=1500, deadline=None)
@given(
    role=st.sampled_from(list(Role)),
    status=st.sampled_from(list(ObservationStatus)),
    kind=st.sampled_from(_GUARD_KINDS),
    is_observer=st.booleans(),
    is_assignee=st.booleans(),
    action_status=st.sampled_from([ActionStatus.PENDING, ActionStatus.IN_PROGRESS, ActionStatus.COMPLETED]),
    same_plant=st.booleans(),
    same_company=st.booleans(),
)
def test_guard_allows_exactly_the_declared_combinations(
    role, status, kind, is_observer, is_assignee, action_status, same_plant, same_company,
):
    actor = Actor(
        actor_id=uuid4(),
        role=role,
        company_id=COMPANY if same_company else OTHER_COMPANY,
        plant_id=(PLANT if same_plant else OTHER_PLANT),
    )
    observation = _snapshot(
        status, action_status, assignee=actor.actor_id if is_assignee else uuid4(),
    )
    if is_observer:
        observation = replace(observation, observer_id=actor.actor_id)
    target = observation.corrective_actions[0] if observation.corrective_actions else None
    effective_action_status = target.status if target else None

    intent = _build_intent(kind, observation, 0, [])
    decision = can_transition(actor, observation, intent, CAPABILITIES)

    has_target = target is not None
    expected = _oracle(
        role,
        status,
        kind,
        is_observer,
        is_assignee and has_target,
        effective_action_status,
        same_plant,
        same_company,
    )
    assert decision.allowed == expected, (role, status, kind, decision.error)
    if not decision.allowed:
        assert decision.error.code in set(TransitionErrorCode)
