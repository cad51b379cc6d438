"""
bbs_services.workflow_service -- The lifecycle's external interface.

Responsibility:
    Resolve the actor, parse the intent, hand it to the ``ObservationStore``
    and translate infrastructure failures into structured
    ``TransitionOutcome`` values.  Emits one trace record per attempt and
    dispatches notices after commit.

Architecture position:
    Services layer.  May import from bbs_engines/ (guard) and bbs_kernel/
    (domain, store).  Holds no state of its own besides its collaborators.

Invariants enforced:
    - The role used by the guard is always the identity provider's role;
      a claimed role that disagrees is rejected before any read.
    - Notices and advisor calls happen outside the aggregate lock.

Failure modes:
    - Unknown actor, claimed-role mismatch, malformed intent, unknown
      observation and lost races all come back as failed outcomes.
    - ImmutabilityViolationError propagates: it means a code path bypassed
      the state machine.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from bbs_engines.authorization import can_create, can_view
from bbs_kernel.domain.actor import Actor, IdentityProvider
from bbs_kernel.domain.intents import Intent, parse_intent
from bbs_kernel.domain.observation import (
    Observation,
    ObservationDraft,
    ObservationStatus,
    TransitionRecord,
)
from bbs_kernel.domain.outcomes import (
    TransitionError,
    TransitionErrorCode,
    TransitionOutcome,
)
from bbs_kernel.domain.roles import CapabilityMatrix, Role
from bbs_kernel.exceptions import (
    AggregateLockTimeoutError,
    ConcurrentModificationError,
    MalformedIntentError,
    ObservationNotFoundError,
)
from bbs_kernel.logging_config import LogContext, get_logger
from bbs_kernel.services.observation_store import CREATE_EVENT, ObservationStore
from bbs_services.advisory import RiskAdvisor, advise_safely
from bbs_services.notifications import NotificationSink, dispatch_notices, notices_for

logger = get_logger("services.workflow_service")

TRACE_TYPE_OBSERVATION_TRANSITION = "OBSERVATION_TRANSITION"
OUTCOME_APPLIED = "applied"
OUTCOME_REJECTED = "rejected"


def _emit_transition_trace(
    event: str | None,
    observation_id: UUID | None,
    outcome: TransitionOutcome,
    duration_ms: float,
) -> None:
    """Emit the structured record for one submitted intent."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_OBSERVATION_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "event": event,
        "entity_id": str(observation_id) if observation_id else None,
        "outcome": OUTCOME_APPLIED if outcome.success else OUTCOME_REJECTED,
        "from_state": outcome.from_status.value if outcome.from_status else None,
        "to_state": outcome.to_status.value if outcome.to_status else None,
        "duration_ms": round(duration_ms, 3),
    }
    if outcome.error is not None:
        record["error_code"] = outcome.error.code.value
        record["reason"] = outcome.error.message
    record.update(LogContext.get_all())
    logger.info("observation_transition", extra=record)


def _error(
    code: TransitionErrorCode,
    message: str,
    field: str | None = None,
    **detail: Any,
) -> TransitionError:
    return TransitionError(code=code, message=message, field=field, detail=detail)


def _draft_problem(draft: ObservationDraft) -> tuple[str, str] | None:
    if not draft.category or not draft.category.strip():
        return "category", "category is required"
    if not draft.description or not draft.description.strip():
        return "description", "description is required"
    if draft.observation_date.tzinfo is None:
        return "observation_date", "observation_date must be timezone-aware"
    return None


class ObservationWorkflowService:
    """
    Entry point used by the UI and API layers.

    Contract:
        ``submit_intent`` and ``create_observation`` never raise for
        anything a user can cause; they return ``TransitionOutcome``.
    """

    def __init__(
        self,
        store: ObservationStore,
        identity: IdentityProvider,
        capabilities: CapabilityMatrix,
        advisor: RiskAdvisor | None = None,
        sinks: Iterable[NotificationSink] = (),
    ):
        self._store = store
        self._identity = identity
        self._capabilities = capabilities
        self._advisor = advisor
        self._sinks = tuple(sinks)

    @property
    def capabilities(self) -> CapabilityMatrix:
        return self._capabilities

    # ------------------------------------------------------------------
    # Actor resolution
    # ------------------------------------------------------------------

    def _resolve_actor(
        self,
        actor_id: UUID,
        actor_role: Role | str | None,
    ) -> Actor | TransitionError:
        actor = self._identity.get_actor(actor_id)
        if actor is None:
            return _error(
                TransitionErrorCode.NOT_FOUND,
                f"Unknown actor {actor_id}",
                field="actor_id",
            )
        if actor_role is None:
            return actor
        try:
            claimed = Role(actor_role)
        except ValueError:
            return _error(
                TransitionErrorCode.INVALID_PAYLOAD,
                f"Unknown role {actor_role!r}",
                field="actor_role",
            )
        if claimed != actor.role:
            return _error(
                TransitionErrorCode.INSUFFICIENT_ROLE,
                f"Claimed role {claimed.value} does not match assigned role "
                f"{actor.role.value}",
                field="actor_role",
                claimed=claimed.value,
                assigned=actor.role.value,
            )
        return actor

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_intent(
        self,
        actor_id: UUID,
        actor_role: Role | str | None,
        observation_id: UUID,
        intent: Intent | str,
        payload: Mapping[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """
        Apply one intent to an observation.

        ``intent`` is either a typed intent or an event name such as
        ``"review.approve"``, in which case ``payload`` carries its fields.
        ``expected_version`` makes the call fail with
        ``CONCURRENT_MODIFICATION`` when the caller's snapshot is stale.
        """
        event_name = intent if isinstance(intent, str) else intent.event.value
        t0 = time.monotonic()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            observation_id=str(observation_id),
            intent=event_name,
        ):
            outcome = self._submit(
                actor_id, actor_role, observation_id, intent, payload, expected_version,
            )
            _emit_transition_trace(
                event_name, observation_id, outcome, (time.monotonic() - t0) * 1000,
            )
            if outcome.success:
                dispatch_notices(self._sinks, notices_for(outcome.event, outcome.observation))
        return outcome

    def _submit(
        self,
        actor_id: UUID,
        actor_role: Role | str | None,
        observation_id: UUID,
        intent: Intent | str,
        payload: Mapping[str, Any] | None,
        expected_version: int | None,
    ) -> TransitionOutcome:
        event_name = intent if isinstance(intent, str) else intent.event.value

        actor = self._resolve_actor(actor_id, actor_role)
        if isinstance(actor, TransitionError):
            return TransitionOutcome.failed(actor, event_name)

        if isinstance(intent, str):
            try:
                intent = parse_intent(intent, payload)
            except MalformedIntentError as exc:
                return self._malformed(observation_id, event_name, exc)

        try:
            return self._store.apply_transition(
                observation_id, actor, intent, expected_version=expected_version,
            )
        except ObservationNotFoundError:
            return TransitionOutcome.failed(
                _error(
                    TransitionErrorCode.NOT_FOUND,
                    f"Observation {observation_id} not found",
                    field="observation_id",
                ),
                event_name,
            )
        except AggregateLockTimeoutError as exc:
            return TransitionOutcome.failed(
                _error(
                    TransitionErrorCode.CONCURRENT_MODIFICATION,
                    str(exc),
                    timeout_seconds=exc.timeout_seconds,
                ),
                event_name,
            )
        except ConcurrentModificationError as exc:
            return TransitionOutcome.failed(
                _error(
                    TransitionErrorCode.CONCURRENT_MODIFICATION,
                    str(exc),
                    expected_version=exc.expected_version,
                    actual_version=exc.actual_version,
                ),
                event_name,
            )

    def _malformed(
        self,
        observation_id: UUID,
        event_name: str,
        exc: MalformedIntentError,
    ) -> TransitionOutcome:
        """A payload that could not be parsed still loses to a missing or closed record."""
        try:
            observation = self._store.load_observation(observation_id)
        except ObservationNotFoundError:
            return TransitionOutcome.failed(
                _error(
                    TransitionErrorCode.NOT_FOUND,
                    f"Observation {observation_id} not found",
                    field="observation_id",
                ),
                event_name,
            )
        if observation.is_closed:
            return TransitionOutcome.failed(
                _error(
                    TransitionErrorCode.INVALID_STATE,
                    "Observation is closed and can no longer be changed",
                    field="status",
                    status=observation.status.value,
                ),
                event_name,
                observation,
            )
        return TransitionOutcome.failed(
            _error(TransitionErrorCode.INVALID_PAYLOAD, exc.reason, field=exc.field),
            event_name,
            observation,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_observation(
        self,
        actor_id: UUID,
        actor_role: Role | str | None,
        draft: ObservationDraft,
    ) -> TransitionOutcome:
        """File a new observation in status ``open`` with a fresh report number."""
        t0 = time.monotonic()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            intent=CREATE_EVENT,
        ):
            outcome = self._create(actor_id, actor_role, draft)
            created = outcome.observation if outcome.success else None
            with LogContext.bind(report_number=created.report_number if created else None):
                _emit_transition_trace(
                    CREATE_EVENT,
                    created.id if created else None,
                    outcome,
                    (time.monotonic() - t0) * 1000,
                )
            if created is not None:
                dispatch_notices(self._sinks, notices_for(CREATE_EVENT, created))
        return outcome

    def _create(
        self,
        actor_id: UUID,
        actor_role: Role | str | None,
        draft: ObservationDraft,
    ) -> TransitionOutcome:
        actor = self._resolve_actor(actor_id, actor_role)
        if isinstance(actor, TransitionError):
            return TransitionOutcome.failed(actor, CREATE_EVENT)

        problem = _draft_problem(draft)
        if problem is not None:
            field, reason = problem
            return TransitionOutcome.failed(
                _error(TransitionErrorCode.INVALID_PAYLOAD, reason, field=field),
                CREATE_EVENT,
            )

        decision = can_create(actor, draft.plant_id or actor.plant_id, self._capabilities)
        if not decision.allowed:
            return TransitionOutcome.failed(decision.error, CREATE_EVENT)

        advisory = advise_safely(self._advisor, draft)
        observation = self._store.create_observation(actor, draft, advisory)
        return TransitionOutcome.succeeded(observation, CREATE_EVENT, None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_observation(
        self,
        observation_id: UUID,
        actor_id: UUID | None = None,
    ) -> Observation:
        """
        Latest committed snapshot.

        With ``actor_id`` the read is filtered by the actor's view scope;
        an observation the actor may not see is reported as not found.

        Raises:
            ObservationNotFoundError
        """
        observation = self._store.load_observation(observation_id)
        if actor_id is None:
            return observation
        actor = self._identity.get_actor(actor_id)
        if actor is None or not can_view(actor, observation, self._capabilities).allowed:
            raise ObservationNotFoundError(str(observation_id))
        return observation

    def get_history(self, observation_id: UUID) -> list[TransitionRecord]:
        return self._store.get_history(observation_id)

    def suggest_corrective_actions(self, observation_id: UUID) -> tuple[str, ...]:
        """Advisor suggestions for a reviewer; empty when no advisor is wired."""
        observation = self._store.load_observation(observation_id)
        if observation.status != ObservationStatus.OPEN or self._advisor is None:
            return ()
        draft = ObservationDraft(
            observation_type=observation.observation_type,
            severity=observation.severity,
            category=observation.category,
            description=observation.description,
            observation_date=observation.observation_date,
            plant_id=observation.plant_id,
            area_id=observation.area_id,
            location_area=observation.location_area,
            specific_location=observation.specific_location,
            immediate_action=observation.immediate_action,
            root_cause=observation.root_cause,
        )
        try:
            return tuple(self._advisor.suggest_actions(draft))
        except Exception:
            logger.warning(
                "advisor_failed",
                extra={"advisor": type(self._advisor).__name__},
                exc_info=True,
            )
            return ()
