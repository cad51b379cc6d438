"""
Transition outcomes (``bbs_kernel.domain.outcomes``).

Responsibility
--------------
Typed result values for the lifecycle: the ``TransitionError`` taxonomy,
the guard's ``GuardDecision``, the engine's ``LifecycleResult``, and the
store/service ``TransitionOutcome``.  Business rejections travel as these
values, never as exceptions.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Also declares
the ``TransitionEvaluator`` protocol implemented by ``bbs_engines`` and
consumed by the store, so the kernel never imports the engines.

Invariants enforced
-------------------
* A failed outcome never carries an observation change.
* ``CONCURRENT_MODIFICATION`` is the only retriable code.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from bbs_kernel.domain.observation import Observation, ObservationStatus

if TYPE_CHECKING:
    from bbs_kernel.domain.actor import Actor
    from bbs_kernel.domain.intents import Intent


class TransitionErrorCode(str, Enum):
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    INVALID_STATE = "INVALID_STATE"
    NOT_ASSIGNEE = "NOT_ASSIGNEE"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    SCOPE_MISMATCH = "SCOPE_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


RETRIABLE_CODES: frozenset[TransitionErrorCode] = frozenset({
    TransitionErrorCode.CONCURRENT_MODIFICATION,
})


@dataclass(frozen=True)
class TransitionError:
    """Structured rejection, safe to serialize to the UI."""

    code: TransitionErrorCode
    message: str
    field: str | None = None
    detail: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def retriable(self) -> bool:
        return self.code in RETRIABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "field": self.field,
            "detail": dict(self.detail),
            "retriable": self.retriable,
        }


@dataclass(frozen=True)
class GuardDecision:
    """Authorization guard verdict for one (actor, observation, intent)."""

    allowed: bool
    error: TransitionError | None = None

    @classmethod
    def allow(cls) -> GuardDecision:
        return cls(allowed=True)

    @classmethod
    def deny(
        cls,
        code: TransitionErrorCode,
        message: str,
        field: str | None = None,
        **detail: Any,
    ) -> GuardDecision:
        return cls(
            allowed=False,
            error=TransitionError(code=code, message=message, field=field, detail=detail),
        )


@dataclass(frozen=True)
class LifecycleResult:
    """Engine output: either the next snapshot or a rejection.

    ``detail`` is recorded on the transition history row.
    """

    observation: Observation | None = None
    error: TransitionError | None = None
    from_status: ObservationStatus | None = None
    to_status: ObservationStatus | None = None
    event: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.error is None and self.observation is not None


@dataclass(frozen=True)
class TransitionOutcome:
    """What ``submit_intent`` returns to the caller."""

    success: bool
    observation: Observation | None = None
    error: TransitionError | None = None
    from_status: ObservationStatus | None = None
    to_status: ObservationStatus | None = None
    event: str | None = None

    @classmethod
    def succeeded(
        cls,
        observation: Observation,
        event: str,
        from_status: ObservationStatus | None,
    ) -> TransitionOutcome:
        return cls(
            success=True,
            observation=observation,
            from_status=from_status,
            to_status=observation.status,
            event=event,
        )

    @classmethod
    def failed(
        cls,
        error: TransitionError,
        event: str | None = None,
        observation: Observation | None = None,
    ) -> TransitionOutcome:
        """Rejection; ``observation`` is the unchanged snapshot when known."""
        return cls(
            success=False,
            observation=observation,
            error=error,
            from_status=observation.status if observation else None,
            to_status=observation.status if observation else None,
            event=event,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "event": self.event,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value if self.to_status else None,
            "error": self.error.to_dict() if self.error else None,
        }


class TransitionEvaluator(Protocol):
    """Guard + state machine, injected into the store."""

    def evaluate(
        self,
        observation: Observation,
        actor: Actor,
        intent: Intent,
        now: datetime,
    ) -> LifecycleResult:
        ...
