"""
Pure domain layer.

This module contains pure value objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from bbs_kernel.domain.actor import Actor, IdentityProvider
from bbs_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bbs_kernel.domain.intents import (
    INTENT_TYPES,
    ClosureIntent,
    CompleteActionIntent,
    CorrectiveActionSpec,
    EditIntent,
    Intent,
    IntentKind,
    ObservationEdit,
    ResubmitIntent,
    ReviewIntent,
    StartActionIntent,
    find_intent_problem,
    parse_intent,
    validate_intent,
)
from bbs_kernel.domain.numbering import ReportNumberFormat, format_problem
from bbs_kernel.domain.observation import (
    ACTION_TRANSITIONS,
    OBSERVATION_TRANSITIONS,
    TERMINAL_OBSERVATION_STATUSES,
    ActionStatus,
    AdvisoryAssessment,
    ClosureDecision,
    ClosureRecord,
    CorrectiveAction,
    Observation,
    ObservationDraft,
    ObservationStatus,
    ObservationType,
    Priority,
    ReviewDecision,
    ReviewRecord,
    Severity,
    TransitionRecord,
    action_to_dict,
    check_consistency,
    observation_to_dict,
)
from bbs_kernel.domain.outcomes import (
    GuardDecision,
    LifecycleResult,
    TransitionError,
    TransitionErrorCode,
    TransitionEvaluator,
    TransitionOutcome,
)
from bbs_kernel.domain.roles import (
    BBS_MODULE,
    Capability,
    CapabilityCategory,
    CapabilityGrant,
    CapabilityMatrix,
    Role,
)
from bbs_kernel.domain.workflow import (
    OBSERVATION_WORKFLOW,
    Guard,
    LifecycleEvent,
    Transition,
    Workflow,
)

__all__ = [
    # Identity
    "Actor",
    "IdentityProvider",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Roles
    "BBS_MODULE",
    "Capability",
    "CapabilityCategory",
    "CapabilityGrant",
    "CapabilityMatrix",
    "Role",
    # Numbering
    "ReportNumberFormat",
    "format_problem",
    # Observation
    "ACTION_TRANSITIONS",
    "OBSERVATION_TRANSITIONS",
    "TERMINAL_OBSERVATION_STATUSES",
    "ActionStatus",
    "AdvisoryAssessment",
    "ClosureDecision",
    "ClosureRecord",
    "CorrectiveAction",
    "Observation",
    "ObservationDraft",
    "ObservationStatus",
    "ObservationType",
    "Priority",
    "ReviewDecision",
    "ReviewRecord",
    "Severity",
    "TransitionRecord",
    "action_to_dict",
    "check_consistency",
    "observation_to_dict",
    # Intents
    "INTENT_TYPES",
    "ClosureIntent",
    "CompleteActionIntent",
    "CorrectiveActionSpec",
    "EditIntent",
    "Intent",
    "IntentKind",
    "ObservationEdit",
    "ResubmitIntent",
    "ReviewIntent",
    "StartActionIntent",
    "find_intent_problem",
    "parse_intent",
    "validate_intent",
    # Outcomes
    "GuardDecision",
    "LifecycleResult",
    "TransitionError",
    "TransitionErrorCode",
    "TransitionEvaluator",
    "TransitionOutcome",
    # Workflow
    "OBSERVATION_WORKFLOW",
    "Guard",
    "LifecycleEvent",
    "Transition",
    "Workflow",
]
