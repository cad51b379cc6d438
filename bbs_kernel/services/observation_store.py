"""
ObservationStore -- the sole writer of observation aggregates.

Responsibility:
    Own the transaction for every observation write: creation with a
    report number, and each lifecycle transition (lock, load, evaluate,
    persist, record history, commit).

Architecture position:
    Kernel > Services -- imperative shell.  The guard and state machine
    are injected as a ``TransitionEvaluator`` so the kernel never imports
    the engines layer.

Invariants enforced:
    OS-1 -- Serialized per aggregate: in-process lock, then
            ``SELECT ... FOR UPDATE`` on the observation row, then the
            optimistic version check at flush.  The guard always sees the
            latest committed snapshot.
    OS-2 -- All-or-nothing: one transaction per transition; the history
            row and the aggregate change commit together or not at all.
    OS-3 -- Rejections leave the aggregate untouched (no flush happens).

Failure modes:
    - ObservationNotFoundError: unknown id.
    - ConcurrentModificationError: ``expected_version`` mismatch or a
      stale row at flush.  AggregateLockTimeoutError: lock wait exceeded.
    - ImmutabilityViolationError: a write reached a closed record.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bbs_kernel.db.engine import session_scope
from bbs_kernel.domain.actor import Actor
from bbs_kernel.domain.clock import Clock, SystemClock
from bbs_kernel.domain.intents import Intent
from bbs_kernel.domain.numbering import ReportNumberFormat
from bbs_kernel.domain.observation import (
    AdvisoryAssessment,
    Observation,
    ObservationDraft,
    ObservationStatus,
    TransitionRecord,
)
from bbs_kernel.domain.outcomes import TransitionEvaluator, TransitionOutcome
from bbs_kernel.exceptions import (
    ConcurrentModificationError,
    ObservationNotFoundError,
)
from bbs_kernel.logging_config import get_logger
from bbs_kernel.models.observation import ObservationModel, ObservationTransitionModel
from bbs_kernel.services.aggregate_locks import AggregateLockRegistry
from bbs_kernel.services.report_numbers import ReportNumberService

logger = get_logger("services.observation_store")

CREATE_EVENT = "observation.create"
_ENTITY = "Observation"


class ObservationStore:
    """
    Persistence and transaction boundary for observations.

    Contract:
        ``apply_transition`` returns a ``TransitionOutcome`` for business
        rejections and raises only for infrastructure failures.
    """

    MAX_CREATE_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: Callable[[], Session],
        evaluator: TransitionEvaluator,
        clock: Clock | None = None,
        locks: AggregateLockRegistry | None = None,
        lock_timeout_seconds: float = 10.0,
        number_format: ReportNumberFormat | None = None,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._session_factory = session_factory
        self._evaluator = evaluator
        self._clock = clock or SystemClock()
        self._locks = locks or AggregateLockRegistry()
        self._lock_timeout = lock_timeout_seconds
        self._number_format = number_format or ReportNumberFormat()
        self._id_factory = id_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_observation(self, observation_id: UUID) -> Observation:
        with session_scope(self._session_factory) as session:
            model = session.get(ObservationModel, observation_id)
            if model is None:
                raise ObservationNotFoundError(str(observation_id))
            return model.to_dto()

    def get_history(self, observation_id: UUID) -> list[TransitionRecord]:
        """Committed transitions in sequence order, creation first."""
        with session_scope(self._session_factory) as session:
            if session.get(ObservationModel, observation_id) is None:
                raise ObservationNotFoundError(str(observation_id))
            rows = session.execute(
                select(ObservationTransitionModel)
                .where(ObservationTransitionModel.observation_id == observation_id)
                .order_by(ObservationTransitionModel.sequence)
            ).scalars()
            return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_observation(
        self,
        actor: Actor,
        draft: ObservationDraft,
        advisory: AdvisoryAssessment | None = None,
    ) -> Observation:
        """
        Persist a new observation in status ``open``.

        The caller has already authorized the actor.  A report number
        collision (another process issued the same number) retries the
        whole transaction.
        """
        for attempt in range(1, self.MAX_CREATE_ATTEMPTS + 1):
            try:
                return self._create_once(actor, draft, advisory)
            except IntegrityError:
                if attempt == self.MAX_CREATE_ATTEMPTS:
                    raise
                logger.warning(
                    "observation_create_retry",
                    extra={"attempt": attempt, "max_attempts": self.MAX_CREATE_ATTEMPTS},
                )
        raise AssertionError("unreachable")

    def _create_once(
        self,
        actor: Actor,
        draft: ObservationDraft,
        advisory: AdvisoryAssessment | None,
    ) -> Observation:
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            numbers = ReportNumberService(session, self._number_format)
            report_number = numbers.next_number(actor.company_id, now.date())
            observation = Observation(
                id=self._id_factory(),
                report_number=report_number,
                company_id=actor.company_id,
                plant_id=draft.plant_id or actor.plant_id,
                area_id=draft.area_id if draft.area_id is not None else actor.area_id,
                observer_id=actor.actor_id,
                observation_type=draft.observation_type,
                severity=draft.severity,
                status=ObservationStatus.OPEN,
                category=draft.category,
                description=draft.description,
                observation_date=draft.observation_date,
                location_area=draft.location_area,
                specific_location=draft.specific_location,
                immediate_action=draft.immediate_action,
                root_cause=draft.root_cause,
                advisory=advisory,
                version=1,
                created_at=now,
                updated_at=now,
            )
            model = ObservationModel.from_dto(observation)
            session.add(model)
            session.flush()
            session.add(
                ObservationTransitionModel(
                    observation_id=model.id,
                    sequence=1,
                    event=CREATE_EVENT,
                    actor_id=actor.actor_id,
                    actor_role=actor.role.value,
                    from_status=None,
                    to_status=ObservationStatus.OPEN.value,
                    observation_version=model.version,
                    occurred_at=now,
                    detail={"report_number": report_number},
                )
            )
            session.flush()
            created = model.to_dto()

        logger.info(
            "observation_created",
            extra={
                "observation_id": str(created.id),
                "report_number": created.report_number,
                "observer_id": str(actor.actor_id),
                "severity": created.severity.value,
            },
        )
        return created

    def apply_transition(
        self,
        observation_id: UUID,
        actor: Actor,
        intent: Intent,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """
        Evaluate and persist one intent against the latest snapshot.

        Raises:
            ObservationNotFoundError, ConcurrentModificationError,
            AggregateLockTimeoutError.
        """
        with self._locks.hold(observation_id, self._lock_timeout):
            with session_scope(self._session_factory) as session:
                model = session.execute(
                    select(ObservationModel)
                    .where(ObservationModel.id == observation_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if model is None:
                    raise ObservationNotFoundError(str(observation_id))

                current = model.to_dto()
                if expected_version is not None and expected_version != current.version:
                    raise ConcurrentModificationError(
                        _ENTITY, str(observation_id), expected_version, current.version,
                    )

                now = self._clock.now()
                result = self._evaluator.evaluate(current, actor, intent, now)
                if not result.is_success:
                    logger.info(
                        "transition_rejected",
                        extra={
                            "observation_id": str(observation_id),
                            "event": result.event,
                            "code": result.error.code.value,
                            "status": current.status.value,
                        },
                    )
                    return TransitionOutcome.failed(result.error, result.event, current)

                successor = replace(
                    result.observation,
                    version=current.version + 1,
                    updated_at=now,
                )
                model.apply_dto(successor)
                model.version = successor.version
                try:
                    session.flush()
                except StaleDataError as exc:
                    raise ConcurrentModificationError(
                        _ENTITY, str(observation_id), current.version, None,
                    ) from exc

                last_sequence = session.execute(
                    select(func.max(ObservationTransitionModel.sequence)).where(
                        ObservationTransitionModel.observation_id == observation_id
                    )
                ).scalar_one()
                session.add(
                    ObservationTransitionModel(
                        observation_id=observation_id,
                        sequence=(last_sequence or 0) + 1,
                        event=result.event,
                        actor_id=actor.actor_id,
                        actor_role=actor.role.value,
                        from_status=result.from_status.value,
                        to_status=result.to_status.value,
                        observation_version=successor.version,
                        occurred_at=now,
                        detail=result.detail,
                    )
                )
                session.flush()
                snapshot = model.to_dto()

        logger.info(
            "transition_applied",
            extra={
                "observation_id": str(observation_id),
                "event": result.event,
                "from_status": result.from_status.value,
                "to_status": result.to_status.value,
                "version": snapshot.version,
            },
        )
        return TransitionOutcome.succeeded(snapshot, result.event, result.from_status)
