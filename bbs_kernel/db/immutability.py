"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A closed observation is a finished safety record.  The lifecycle engine
already refuses every intent on a closed observation; this module is the
second line, catching any code path that writes through the ORM without
going through the engine.

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                      | When Immutable                    | Why
----------------------------|-----------------------------------|----------------------------------
ObservationModel            | After status = closed             | Closed = final safety record
CorrectiveActionModel       | When parent observation is closed | Actions are part of the record
ObservationTransitionModel  | ALWAYS (from creation)            | History is append-only

===============================================================================
DESIGN DECISIONS
===============================================================================

1. CHECK "WAS CLOSED", NOT "IS CLOSED".
   The closure transition itself sets status=closed.  We allow that
   UPDATE and block every later one, using SQLAlchemy attribute history.

2. INLINE IMPORTS.
   Models import from db; db imports from models only inside functions.

===============================================================================
USAGE
===============================================================================

    from bbs_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup; idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from bbs_kernel.exceptions import ImmutabilityViolationError
from bbs_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_CLOSED = "closed"


def _was_closed(observation) -> bool:
    """True if the row was already closed before the pending flush."""
    status_history = get_history(observation, "status")
    if status_history.deleted:
        return status_history.deleted[0] == _CLOSED
    if not status_history.added:
        return observation.status == _CLOSED
    return False


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_observation_immutability(mapper, connection, target):
    """Prevent any change to an observation that was already closed."""
    if not _was_closed(target):
        return
    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            _block(
                "Observation",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a closed observation",
                attr.key,
            )


def _check_observation_delete(mapper, connection, target):
    """Prevent deletion of closed observations."""
    if target.status == _CLOSED:
        _block("Observation", target.id, "DELETE", "Closed observations cannot be deleted")


def _check_action_write(mapper, connection, target):
    """Prevent adding or changing actions on a closed observation."""
    parent = target.observation
    if parent is not None and _was_closed(parent):
        _block(
            "CorrectiveAction",
            target.id,
            "UPDATE",
            "Corrective actions cannot change after the observation is closed",
        )


def _check_action_delete(mapper, connection, target):
    parent = target.observation
    if parent is not None and parent.status == _CLOSED:
        _block(
            "CorrectiveAction",
            target.id,
            "DELETE",
            "Corrective actions cannot be deleted after the observation is closed",
        )


def _check_transition_immutability(mapper, connection, target):
    """Transition history rows are append-only."""
    _block(
        "ObservationTransition",
        target.id,
        "UPDATE",
        "Transition history records cannot be modified",
    )


def _check_transition_delete(mapper, connection, target):
    _block(
        "ObservationTransition",
        target.id,
        "DELETE",
        "Transition history records cannot be deleted",
    )


def _listeners():
    from bbs_kernel.models.observation import (
        CorrectiveActionModel,
        ObservationModel,
        ObservationTransitionModel,
    )

    return (
        (ObservationModel, "before_update", _check_observation_immutability),
        (ObservationModel, "before_delete", _check_observation_delete),
        (CorrectiveActionModel, "before_insert", _check_action_write),
        (CorrectiveActionModel, "before_update", _check_action_write),
        (CorrectiveActionModel, "before_delete", _check_action_delete),
        (ObservationTransitionModel, "before_update", _check_transition_immutability),
        (ObservationTransitionModel, "before_delete", _check_transition_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
