"""
Observation workflow definition (``bbs_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the observation state machine: ``Guard``,
``Transition`` and ``Workflow``, plus ``OBSERVATION_WORKFLOW``, the single
declarative table of (from, event, to) edges.  The lifecycle engine checks
every transition it produces against this table.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from bbs_kernel.domain.observation import ObservationStatus


class LifecycleEvent(str, Enum):
    """Every event the lifecycle accepts, named ``<subject>.<verb>``."""

    REVIEW_APPROVE = "review.approve"
    REVIEW_REASSIGN = "review.reassign"
    ACTION_START = "action.start"
    ACTION_COMPLETE = "action.complete"
    CLOSURE_APPROVE = "closure.approve"
    CLOSURE_REJECT = "closure.reject"
    EDIT = "observation.edit"
    RESUBMIT = "observation.resubmit"


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the authorization guard does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a record lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def allows(self, from_state: str, action: str, to_state: str) -> bool:
        return any(
            t.from_state == from_state and t.action == action and t.to_state == to_state
            for t in self.transitions
        )

    def actions_from(self, state: str) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions if t.from_state == state)

    def edges(self) -> frozenset[tuple[str, str]]:
        return frozenset((t.from_state, t.to_state) for t in self.transitions)


_REVIEWER = Guard("reviewer_role", "hod, plant_head or safety_incharge; status open")
_ASSIGNEE = Guard("assignee", "actor is the action's assignee; action not completed")
_CLOSER = Guard("closer_role", "safety_incharge or plant_head; status pending_closure")
_EDITOR = Guard("editor", "observer while open, or plant_head/safety_incharge override")

_OPEN = ObservationStatus.OPEN.value
_APPROVED = ObservationStatus.APPROVED.value
_PENDING = ObservationStatus.PENDING_CLOSURE.value
_CLOSED = ObservationStatus.CLOSED.value
_REASSIGNED = ObservationStatus.REASSIGNED.value


OBSERVATION_WORKFLOW = Workflow(
    name="bbs_observation",
    description="Behavioral-safety observation review, action and closure lifecycle",
    initial_state=_OPEN,
    states=(_OPEN, _APPROVED, _PENDING, _CLOSED, _REASSIGNED),
    transitions=(
        Transition(_OPEN, _APPROVED, LifecycleEvent.REVIEW_APPROVE.value, _REVIEWER),
        # Zero outstanding actions after review: vacuously complete
        Transition(_OPEN, _PENDING, LifecycleEvent.REVIEW_APPROVE.value, _REVIEWER),
        Transition(_OPEN, _REASSIGNED, LifecycleEvent.REVIEW_REASSIGN.value, _REVIEWER),
        Transition(_APPROVED, _APPROVED, LifecycleEvent.ACTION_START.value, _ASSIGNEE),
        Transition(_APPROVED, _APPROVED, LifecycleEvent.ACTION_COMPLETE.value, _ASSIGNEE),
        Transition(_APPROVED, _PENDING, LifecycleEvent.ACTION_COMPLETE.value, _ASSIGNEE),
        Transition(_PENDING, _CLOSED, LifecycleEvent.CLOSURE_APPROVE.value, _CLOSER),
        Transition(_PENDING, _REASSIGNED, LifecycleEvent.CLOSURE_REJECT.value, _CLOSER),
        Transition(_REASSIGNED, _OPEN, LifecycleEvent.RESUBMIT.value, _EDITOR),
        Transition(_OPEN, _OPEN, LifecycleEvent.EDIT.value, _EDITOR),
        Transition(_APPROVED, _APPROVED, LifecycleEvent.EDIT.value, _EDITOR),
        Transition(_PENDING, _PENDING, LifecycleEvent.EDIT.value, _EDITOR),
        Transition(_REASSIGNED, _REASSIGNED, LifecycleEvent.EDIT.value, _EDITOR),
    ),
    terminal_states=(_CLOSED,),
)
