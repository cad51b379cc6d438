"""
Typed Exception Hierarchy for the BBS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Workflow rejections that a user can cause (a worker trying to close a
report, an assignee completing an action twice) are NOT exceptions in this
kernel -- they are ordinary ``TransitionOutcome`` values carrying a typed
``TransitionError`` (see ``bbs_kernel.domain.outcomes``).

The exceptions below cover everything else: missing aggregates on the read
path, lost concurrency races, attempts to bypass immutability at the ORM
level, malformed payloads at the parsing boundary, and unknown actors.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        observation = store.load_observation(observation_id)
    except ObservationNotFoundError as e:
        api_response(code=e.code, observation_id=e.observation_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BbsKernelError (base)
    |
    +-- ObservationError
    |   +-- ObservationNotFoundError
    |   +-- CorrectiveActionNotFoundError
    |   +-- ReportNumberError
    |
    +-- IntentError
    |   +-- MalformedIntentError
    |
    +-- IdentityError
    |   +-- UnknownActorError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |       +-- AggregateLockTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|--------------------------------------
Observation  | NOT_FOUND                  | Observation id doesn't exist
             | ACTION_NOT_FOUND           | Corrective action id not on record
             | REPORT_NUMBER_FAILED       | Number could not be allocated
-------------|----------------------------|--------------------------------------
Intent       | INVALID_PAYLOAD            | Unknown event or malformed payload
-------------|----------------------------|--------------------------------------
Identity     | UNKNOWN_ACTOR              | Identity provider has no such actor
-------------|----------------------------|--------------------------------------
Concurrency  | CONCURRENT_MODIFICATION    | Lost optimistic race (retry safe)
             | CONCURRENT_MODIFICATION    | Aggregate lock wait timed out
-------------|----------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION     | Closed record or history mutated

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONCURRENCY ERRORS ARE RETRIABLE:

    except ConcurrentModificationError:
        # guard re-evaluation is idempotent given a fresh snapshot
        retry()

2. IMMUTABILITY ERRORS ARE NEVER EXPECTED:

    except ImmutabilityViolationError as e:
        alert(e.entity_type, e.entity_id)  # a code path bypassed the state machine
"""


class BbsKernelError(Exception):
    """
    Base exception for all BBS kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "BBS_KERNEL_ERROR"


# Observation-related exceptions


class ObservationError(BbsKernelError):
    """Base exception for observation aggregate errors."""

    code: str = "OBSERVATION_ERROR"


class ObservationNotFoundError(ObservationError):
    """Observation with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, observation_id: str):
        self.observation_id = observation_id
        super().__init__(f"Observation not found: {observation_id}")


class CorrectiveActionNotFoundError(ObservationError):
    """Corrective action is not part of the observation."""

    code: str = "ACTION_NOT_FOUND"

    def __init__(self, observation_id: str, action_id: str):
        self.observation_id = observation_id
        self.action_id = action_id
        super().__init__(
            f"Corrective action {action_id} not found on observation {observation_id}"
        )


class ReportNumberError(ObservationError):
    """A report number could not be allocated."""

    code: str = "REPORT_NUMBER_FAILED"

    def __init__(self, counter_name: str, reason: str):
        self.counter_name = counter_name
        self.reason = reason
        super().__init__(f"Report number allocation failed for {counter_name}: {reason}")


# Intent-related exceptions


class IntentError(BbsKernelError):
    """Base exception for intent boundary errors."""

    code: str = "INTENT_ERROR"


class MalformedIntentError(IntentError):
    """The submitted event name or payload does not parse into a typed intent."""

    code: str = "INVALID_PAYLOAD"

    def __init__(self, event: str, field: str | None, reason: str):
        self.event = event
        self.field = field
        self.reason = reason
        where = f" (field '{field}')" if field else ""
        super().__init__(f"Malformed intent '{event}'{where}: {reason}")


# Identity-related exceptions


class IdentityError(BbsKernelError):
    """Base exception for identity lookup errors."""

    code: str = "IDENTITY_ERROR"


class UnknownActorError(IdentityError):
    """The identity provider does not know this actor."""

    code: str = "UNKNOWN_ACTOR"

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__(f"Unknown actor: {actor_id}")


# Concurrency-related exceptions


class ConcurrencyError(BbsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    The aggregate was modified by another transaction.

    Safe to retry: the guard is re-evaluated against a fresh snapshot.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification on {entity_type} {entity_id}{detail}"
        )


class AggregateLockTimeoutError(ConcurrentModificationError):
    """Timed out waiting for the per-aggregate lock."""

    def __init__(self, entity_type: str, entity_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(entity_type, entity_id)
        self.args = (
            f"Timed out after {timeout_seconds}s waiting for lock on "
            f"{entity_type} {entity_id}",
        )


# Immutability-related exceptions


class ImmutabilityError(BbsKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Closed observations, their corrective actions, and transition
    history rows are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
