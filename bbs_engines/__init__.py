"""
Pure evaluation engines for the observation lifecycle.

Engines take domain snapshots and return results.  They never touch the
database, never read a clock, and never log.
"""

from bbs_engines.authorization import (
    CLOSER_ROLES,
    EDIT_OVERRIDE_ROLES,
    GLOBAL_SCOPE_ROLES,
    INTENT_CAPABILITY,
    REVIEWER_ROLES,
    can_create,
    can_transition,
    can_view,
    check_scope,
)
from bbs_engines.lifecycle import LifecycleEvaluator, apply_intent

__all__ = [
    "CLOSER_ROLES",
    "EDIT_OVERRIDE_ROLES",
    "GLOBAL_SCOPE_ROLES",
    "INTENT_CAPABILITY",
    "REVIEWER_ROLES",
    "LifecycleEvaluator",
    "apply_intent",
    "can_create",
    "can_transition",
    "can_view",
    "check_scope",
]
