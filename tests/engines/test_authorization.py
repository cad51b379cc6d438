"""
Tests for the pure authorization guard (``bbs_engines.authorization``).

Invariants tested:
- AG-0: every intent on a closed observation is INVALID_STATE, for every
  role, before any other check.
- AG-1: capability, then context, then scope.
- AG-2: company isolation for every role; only company_owner spans plants.
- Guard soundness: an allowed (role, intent) pair is always one the
  documented rules permit.
"""

from dataclasses import replace
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from bbs_engines.authorization import (
    CLOSER_ROLES,
    REVIEWER_ROLES,
    can_create,
    can_transition,
    can_view,
    check_scope,
)
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
    ActionStatus,
    ClosureDecision,
    CorrectiveAction,
    ObservationStatus,
    ReviewDecision,
    ReviewRecord,
    Severity,
)
from bbs_kernel.domain.outcomes import TransitionErrorCode
from bbs_kernel.domain.roles import CapabilityMatrix, Role

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _review(actor_id):
    return ReviewRecord(actor_id, NOW, ReviewDecision.APPROVE)


@pytest.fixture
def approved(make_snapshot, cast):
    """Approved observation with one pending action assigned to worker2."""
    action = CorrectiveAction(
        id=uuid4(), action="Fix guard", assigned_to=cast.worker2.actor_id, position=0,
    )
    return make_snapshot(
        status=ObservationStatus.APPROVED,
        review=_review(cast.hod.actor_id),
        corrective_actions=(action,),
    )


@pytest.fixture
def pending_closure(make_snapshot, cast):
    action = CorrectiveAction(
        id=uuid4(), action="Fix guard", assigned_to=cast.worker2.actor_id, position=0,
        status=ActionStatus.COMPLETED, completed_date=NOW,
    )
    return make_snapshot(
        status=ObservationStatus.PENDING_CLOSURE,
        review=_review(cast.hod.actor_id),
        corrective_actions=(action,),
        completed_at=NOW,
        completed_by=cast.worker2.actor_id,
    )


def _intents_for(observation):
    action_id = (
        observation.corrective_actions[0].id if observation.corrective_actions else uuid4()
    )
    return [
        ReviewIntent(ReviewDecision.APPROVE),
        ReviewIntent(ReviewDecision.REASSIGN, reassign_reason="unclear"),
        StartActionIntent(action_id),
        CompleteActionIntent(action_id),
        ClosureIntent(ClosureDecision.APPROVE),
        ClosureIntent(ClosureDecision.REJECT, comments="redo"),
        EditIntent(ObservationEdit(description="more detail")),
        ResubmitIntent(comments="fixed"),
    ]


class TestClosedPrecedence:

    @pytest.mark.parametrize("role", list(Role))
    def test_closed_rejects_every_intent_for_every_role(self, make_snapshot, capabilities, cast, role):
        closed = make_snapshot(
            status=ObservationStatus.CLOSED,
            review=_review(cast.hod.actor_id),
        )
        actor = cast.with_role(role)
        for intent in _intents_for(closed):
            decision = can_transition(actor, closed, intent, capabilities)
            assert not decision.allowed
            assert decision.error.code == TransitionErrorCode.INVALID_STATE

    def test_closed_precedes_scope(self, make_snapshot, capabilities, cast):
        closed = make_snapshot(status=ObservationStatus.CLOSED, review=_review(cast.hod.actor_id))
        decision = can_transition(
            cast.foreign_safety, closed, ClosureIntent(ClosureDecision.APPROVE), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.INVALID_STATE


class TestReviewGuard:

    @pytest.mark.parametrize("role", sorted(REVIEWER_ROLES, key=lambda r: r.value))
    def test_reviewers_may_review_open(self, make_snapshot, capabilities, cast, role):
        decision = can_transition(
            cast.with_role(role), make_snapshot(), ReviewIntent(ReviewDecision.APPROVE), capabilities,
        )
        assert decision.allowed

    @pytest.mark.parametrize("role", [Role.WORKER, Role.CONTRACTOR, Role.COMPANY_OWNER])
    def test_non_reviewers_rejected(self, make_snapshot, capabilities, cast, role):
        decision = can_transition(
            cast.with_role(role), make_snapshot(), ReviewIntent(ReviewDecision.APPROVE), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE

    def test_review_twice_rejected(self, approved, capabilities, cast):
        decision = can_transition(cast.hod, approved, ReviewIntent(ReviewDecision.APPROVE), capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE
        assert decision.error.field == "status"

    def test_other_plant_reviewer_is_scope_mismatch(self, make_snapshot, capabilities, cast):
        decision = can_transition(
            cast.other_plant_hod, make_snapshot(), ReviewIntent(ReviewDecision.APPROVE), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH
        assert decision.error.field == "plant_id"

    def test_foreign_company_is_scope_mismatch(self, make_snapshot, capabilities, cast):
        decision = can_transition(
            cast.foreign_safety, make_snapshot(), ReviewIntent(ReviewDecision.APPROVE), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH
        assert decision.error.field == "company_id"

    def test_capability_checked_before_context(self, make_snapshot, cast):
        """A matrix without review grants denies even a reviewer role."""
        matrix = CapabilityMatrix.from_mapping({"hod": {"bbs": {"review": []}}})
        decision = can_transition(cast.hod, make_snapshot(), ReviewIntent(ReviewDecision.APPROVE), matrix)
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE
        assert decision.error.detail["category"] == "review"


class TestActionGuard:

    def test_assignee_may_start(self, approved, capabilities, cast):
        action = approved.corrective_actions[0]
        assert can_transition(cast.worker2, approved, StartActionIntent(action.id), capabilities).allowed

    @pytest.mark.parametrize("name", ["worker", "hod", "plant_head", "safety", "owner"])
    def test_non_assignee_rejected_regardless_of_role(self, approved, capabilities, cast, name):
        action = approved.corrective_actions[0]
        decision = can_transition(
            getattr(cast, name), approved, CompleteActionIntent(action.id), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.NOT_ASSIGNEE

    def test_unknown_action(self, approved, capabilities, cast):
        decision = can_transition(cast.worker2, approved, StartActionIntent(uuid4()), capabilities)
        assert decision.error.code == TransitionErrorCode.NOT_FOUND
        assert decision.error.field == "action_id"

    def test_completed_action_rejected(self, pending_closure, capabilities, cast):
        action = pending_closure.corrective_actions[0]
        decision = can_transition(cast.worker2, pending_closure, CompleteActionIntent(action.id), capabilities)
        assert decision.error.code == TransitionErrorCode.ALREADY_COMPLETED

    def test_start_in_progress_rejected(self, approved, capabilities, cast):
        action = replace(approved.corrective_actions[0], status=ActionStatus.IN_PROGRESS, started_at=NOW)
        obs = replace(approved, corrective_actions=(action,))
        decision = can_transition(cast.worker2, obs, StartActionIntent(action.id), capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE

    def test_complete_in_progress_allowed(self, approved, capabilities, cast):
        action = replace(approved.corrective_actions[0], status=ActionStatus.IN_PROGRESS, started_at=NOW)
        obs = replace(approved, corrective_actions=(action,))
        assert can_transition(cast.worker2, obs, CompleteActionIntent(action.id), capabilities).allowed

    def test_actions_frozen_outside_approved(self, approved, capabilities, cast):
        reassigned = replace(approved, status=ObservationStatus.REASSIGNED)
        action = reassigned.corrective_actions[0]
        decision = can_transition(cast.worker2, reassigned, StartActionIntent(action.id), capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE
        assert decision.error.field == "status"

    def test_assignee_in_other_plant_is_scope_mismatch(self, make_snapshot, capabilities, cast):
        action = CorrectiveAction(
            id=uuid4(), action="x", assigned_to=cast.other_plant_safety.actor_id, position=0,
        )
        obs = make_snapshot(
            status=ObservationStatus.APPROVED,
            review=_review(cast.hod.actor_id),
            corrective_actions=(action,),
        )
        decision = can_transition(cast.other_plant_safety, obs, StartActionIntent(action.id), capabilities)
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH


class TestClosureGuard:

    @pytest.mark.parametrize("role", sorted(CLOSER_ROLES, key=lambda r: r.value))
    def test_closers_may_close(self, pending_closure, capabilities, cast, role):
        decision = can_transition(
            cast.with_role(role), pending_closure, ClosureIntent(ClosureDecision.APPROVE), capabilities,
        )
        assert decision.allowed

    @pytest.mark.parametrize("role", [Role.HOD, Role.WORKER, Role.CONTRACTOR])
    def test_non_closers_rejected(self, pending_closure, capabilities, cast, role):
        decision = can_transition(
            cast.with_role(role), pending_closure, ClosureIntent(ClosureDecision.APPROVE), capabilities,
        )
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE

    def test_closure_requires_pending_closure(self, approved, capabilities, cast):
        decision = can_transition(cast.safety, approved, ClosureIntent(ClosureDecision.APPROVE), capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE


class TestEditGuard:

    def test_observer_may_edit_open(self, make_snapshot, capabilities, cast):
        intent = EditIntent(ObservationEdit(severity=Severity.HIGH))
        assert can_transition(cast.worker, make_snapshot(), intent, capabilities).allowed

    def test_other_worker_may_not_edit(self, make_snapshot, capabilities, cast):
        intent = EditIntent(ObservationEdit(description="mine now"))
        decision = can_transition(cast.worker2, make_snapshot(), intent, capabilities)
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE

    def test_observer_may_not_edit_after_review(self, approved, capabilities, cast):
        intent = EditIntent(ObservationEdit(description="late"))
        decision = can_transition(cast.worker, approved, intent, capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE

    @pytest.mark.parametrize("name", ["plant_head", "safety"])
    def test_override_roles_edit_any_non_closed(self, approved, capabilities, cast, name):
        intent = EditIntent(ObservationEdit(root_cause="no guard"))
        assert can_transition(getattr(cast, name), approved, intent, capabilities).allowed

    def test_severity_locked_after_review_even_for_override(self, approved, capabilities, cast):
        intent = EditIntent(ObservationEdit(severity=Severity.CRITICAL))
        decision = can_transition(cast.safety, approved, intent, capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE
        assert decision.error.field == "severity"


class TestResubmitGuard:

    def test_observer_may_resubmit_reassigned(self, make_snapshot, capabilities, cast):
        obs = make_snapshot(
            status=ObservationStatus.REASSIGNED,
            review=ReviewRecord(cast.hod.actor_id, NOW, ReviewDecision.REASSIGN, reassign_reason="x"),
        )
        assert can_transition(cast.worker, obs, ResubmitIntent(), capabilities).allowed

    def test_resubmit_requires_reassigned(self, make_snapshot, capabilities, cast):
        decision = can_transition(cast.safety, make_snapshot(), ResubmitIntent(), capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_STATE

    def test_resubmit_cannot_change_severity(self, make_snapshot, capabilities, cast):
        obs = make_snapshot(
            status=ObservationStatus.REASSIGNED,
            review=ReviewRecord(cast.hod.actor_id, NOW, ReviewDecision.REASSIGN, reassign_reason="x"),
        )
        intent = ResubmitIntent(changes=ObservationEdit(severity=Severity.LOW))
        decision = can_transition(cast.worker, obs, intent, capabilities)
        assert decision.error.field == "severity"


class TestGuardSoundness:
    """Exhaustive check over every in-scope role and intent in every status."""

    @staticmethod
    def _permitted(role, observation, intent, actor):
        status = observation.status
        if status == ObservationStatus.CLOSED:
            return False
        if isinstance(intent, ReviewIntent):
            return role in REVIEWER_ROLES and status == ObservationStatus.OPEN
        if isinstance(intent, (StartActionIntent, CompleteActionIntent)):
            action = observation.find_action(intent.action_id)
            return (
                action is not None
                and action.assigned_to == actor.actor_id
                and status == ObservationStatus.APPROVED
                and action.status != ActionStatus.COMPLETED
            )
        if isinstance(intent, ClosureIntent):
            return role in CLOSER_ROLES and status == ObservationStatus.PENDING_CLOSURE
        if isinstance(intent, EditIntent):
            return role in (Role.PLANT_HEAD, Role.SAFETY_INCHARGE) or (
                actor.actor_id == observation.observer_id and status == ObservationStatus.OPEN
            )
        if isinstance(intent, ResubmitIntent):
            return status == ObservationStatus.REASSIGNED and (
                role in (Role.PLANT_HEAD, Role.SAFETY_INCHARGE)
                or actor.actor_id == observation.observer_id
            )
        return False

    def test_allowed_implies_permitted(self, make_snapshot, approved, pending_closure, capabilities, cast):
        snapshots = [
            make_snapshot(),
            approved,
            pending_closure,
            make_snapshot(
                status=ObservationStatus.REASSIGNED,
                review=ReviewRecord(cast.hod.actor_id, NOW, ReviewDecision.REASSIGN, reassign_reason="x"),
            ),
        ]
        actors = [a for a in cast.all() if a.company_id == cast.company_id and (
            a.plant_id == cast.plant_id or a.role == Role.COMPANY_OWNER
        )]
        checked = 0
        for obs in snapshots:
            for actor in actors:
                for intent in _intents_for(obs):
                    decision = can_transition(actor, obs, intent, capabilities)
                    assert decision.allowed == self._permitted(actor.role, obs, intent, actor), (
                        actor.name, obs.status, type(intent).__name__, decision.error,
                    )
                    checked += 1
        assert checked == len(snapshots) * len(actors) * 8

    def test_denials_always_carry_error(self, make_snapshot, capabilities, cast):
        obs = make_snapshot()
        for actor in cast.all():
            for intent in _intents_for(obs):
                decision = can_transition(actor, obs, intent, capabilities)
                assert decision.allowed == (decision.error is None)


class TestCreateAndScope:

    def test_worker_creates_in_own_plant(self, capabilities, cast):
        assert can_create(cast.worker, cast.plant_id, capabilities).allowed

    def test_worker_cannot_create_in_other_plant(self, capabilities, cast):
        decision = can_create(cast.worker, cast.other_plant_id, capabilities)
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH

    def test_owner_creates_in_any_plant(self, capabilities, cast):
        assert can_create(cast.owner, cast.other_plant_id, capabilities).allowed

    def test_plant_required(self, capabilities, cast):
        decision = can_create(cast.owner, None, capabilities)
        assert decision.error.code == TransitionErrorCode.INVALID_PAYLOAD

    def test_no_create_capability(self, cast):
        decision = can_create(cast.worker, cast.plant_id, CapabilityMatrix())
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE

    def test_owner_restricted_to_own_company(self, cast):
        decision = check_scope(cast.owner, cast.foreign_company_id, cast.foreign_plant_id)
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH

    def test_actor_without_plant_is_out_of_scope(self, cast):
        floating = Actor(actor_id=uuid4(), role=Role.HOD, company_id=cast.company_id)
        assert not check_scope(floating, cast.company_id, cast.plant_id).allowed


class TestViewGuard:

    def test_owner_sees_everything_in_company(self, make_snapshot, capabilities, cast):
        obs = make_snapshot(plant_id=cast.other_plant_id)
        assert can_view(cast.owner, obs, capabilities).allowed
        assert not can_view(cast.foreign_owner, obs, capabilities).allowed

    def test_plant_head_sees_own_plant_only(self, make_snapshot, capabilities, cast):
        assert can_view(cast.plant_head, make_snapshot(), capabilities).allowed
        decision = can_view(cast.plant_head, make_snapshot(plant_id=cast.other_plant_id), capabilities)
        assert decision.error.code == TransitionErrorCode.SCOPE_MISMATCH

    def test_hod_sees_own_area(self, make_snapshot, capabilities, cast):
        assert can_view(cast.hod, make_snapshot(), capabilities).allowed
        assert not can_view(cast.hod, make_snapshot(area_id=cast.other_area_id), capabilities).allowed

    def test_worker_sees_own_reports(self, make_snapshot, capabilities, cast):
        assert can_view(cast.worker, make_snapshot(observer=cast.worker), capabilities).allowed
        assert not can_view(cast.worker2, make_snapshot(observer=cast.worker), capabilities).allowed

    def test_no_view_grant(self, make_snapshot, cast):
        decision = can_view(cast.worker, make_snapshot(), CapabilityMatrix())
        assert decision.error.code == TransitionErrorCode.INSUFFICIENT_ROLE
