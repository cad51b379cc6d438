"""
Module: bbs_kernel.models.observation
Responsibility: ORM persistence for observations, their corrective actions,
    and the append-only transition history.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    OL-1 -- DB check constraints limit status, severity, type and decision
            values; the lifecycle engine enforces the edges.
    OL-5 -- Closed observations and their corrective actions are immutable;
            enforced by the listeners in ``bbs_kernel.db.immutability``.
    OL-6 -- Transition history rows are append-only.
    OL-7 -- Optimistic concurrency: ``version`` is the mapper's
            ``version_id_col``; a stale UPDATE raises StaleDataError.

Failure modes:
    - IntegrityError on duplicate report_number or action position.
    - StaleDataError when the row was updated by another transaction.
    - ImmutabilityViolationError on forbidden UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bbs_kernel.db.base import Base, UUIDString
from bbs_kernel.domain.observation import (
    ActionStatus,
    AdvisoryAssessment,
    ClosureDecision,
    ClosureRecord,
    CorrectiveAction,
    Observation,
    ObservationStatus,
    ObservationType,
    Priority,
    ReviewDecision,
    ReviewRecord,
    Severity,
    TransitionRecord,
)


def _assign(model: Any, name: str, value: Any) -> None:
    """Set an attribute only when the value differs (keeps history clean)."""
    if getattr(model, name) != value:
        setattr(model, name, value)


def _advisory_to_json(advisory: AdvisoryAssessment | None) -> dict | None:
    if advisory is None:
        return None
    return {
        "source": advisory.source,
        "risk_level": advisory.risk_level.value if advisory.risk_level else None,
        "risk_assessment": advisory.risk_assessment,
        "suggested_actions": list(advisory.suggested_actions),
        "confidence": advisory.confidence,
    }


def _advisory_from_json(data: dict | None) -> AdvisoryAssessment | None:
    if not data:
        return None
    return AdvisoryAssessment(
        source=data.get("source", ""),
        risk_level=Severity(data["risk_level"]) if data.get("risk_level") else None,
        risk_assessment=data.get("risk_assessment", ""),
        suggested_actions=tuple(data.get("suggested_actions") or ()),
        confidence=data.get("confidence"),
    )


class ObservationModel(Base):
    """Persistent observation aggregate root.

    Contract:
        Written only by ``ObservationStore``.  Status changes follow the
        lifecycle engine; a closed row never changes again.
    """

    __tablename__ = "bbs_observations"

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'approved', 'pending_closure', 'closed', 'reassigned')",
            name="ck_bbs_observations_valid_status",
        ),
        CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')",
            name="ck_bbs_observations_valid_severity",
        ),
        CheckConstraint(
            "observation_type IN ('unsafe_act', 'unsafe_condition', 'safe_behavior')",
            name="ck_bbs_observations_valid_type",
        ),
        CheckConstraint(
            "review_decision IS NULL OR review_decision IN ('approve', 'reassign')",
            name="ck_bbs_observations_valid_review_decision",
        ),
        CheckConstraint(
            "closure_decision IS NULL OR closure_decision IN ('approve', 'reject')",
            name="ck_bbs_observations_valid_closure_decision",
        ),
        UniqueConstraint("company_id", "report_number", name="uq_bbs_observations_report_number"),
        Index("ix_bbs_observations_scope_status", "company_id", "plant_id", "status"),
        Index("ix_bbs_observations_observer", "observer_id"),
    )

    report_number: Mapped[str] = mapped_column(String(50), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    plant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    area_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    observer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    observation_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="open")
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    observation_date: Mapped[datetime] = mapped_column(nullable=False)
    location_area: Mapped[str | None] = mapped_column(String(200), nullable=True)
    specific_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    immediate_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    reassign_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    closure_decided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closure_decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closure_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    closure_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    advisory: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    corrective_actions: Mapped[list[CorrectiveActionModel]] = relationship(
        "CorrectiveActionModel",
        back_populates="observation",
        order_by="CorrectiveActionModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Version is set explicitly by the store on every transition.
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<Observation {self.report_number} status={self.status} v{self.version}>"

    def to_dto(self) -> Observation:
        """Convert ORM model to frozen domain snapshot."""
        review = None
        if self.review_decision is not None:
            review = ReviewRecord(
                reviewed_by=self.reviewed_by,
                reviewed_at=self.reviewed_at,
                decision=ReviewDecision(self.review_decision),
                comments=self.review_comments or "",
                reassign_reason=self.reassign_reason,
            )
        closure = None
        if self.closure_decision is not None:
            closure = ClosureRecord(
                decided_by=self.closure_decided_by,
                decided_at=self.closure_decided_at,
                decision=ClosureDecision(self.closure_decision),
                comments=self.closure_comments or "",
            )
        return Observation(
            id=self.id,
            report_number=self.report_number,
            company_id=self.company_id,
            plant_id=self.plant_id,
            area_id=self.area_id,
            observer_id=self.observer_id,
            observation_type=ObservationType(self.observation_type),
            severity=Severity(self.severity),
            status=ObservationStatus(self.status),
            category=self.category,
            description=self.description,
            observation_date=self.observation_date,
            location_area=self.location_area,
            specific_location=self.specific_location,
            immediate_action=self.immediate_action,
            root_cause=self.root_cause,
            corrective_actions=tuple(a.to_dto() for a in self.corrective_actions),
            review=review,
            closure=closure,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            advisory=_advisory_from_json(self.advisory),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: Observation) -> ObservationModel:
        """Create ORM model for a newly created observation."""
        model = cls(
            id=dto.id,
            report_number=dto.report_number,
            company_id=dto.company_id,
            plant_id=dto.plant_id,
            area_id=dto.area_id,
            observer_id=dto.observer_id,
            observation_type=dto.observation_type.value,
            severity=dto.severity.value,
            status=dto.status.value,
            category=dto.category,
            description=dto.description,
            observation_date=dto.observation_date,
            location_area=dto.location_area,
            specific_location=dto.specific_location,
            immediate_action=dto.immediate_action,
            root_cause=dto.root_cause,
            advisory=_advisory_to_json(dto.advisory),
            version=dto.version,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
        )
        model.corrective_actions = [
            CorrectiveActionModel.from_dto(a) for a in dto.corrective_actions
        ]
        return model

    def apply_dto(self, dto: Observation) -> None:
        """Copy a successor snapshot onto this row.

        Identity fields (id, report number, scope, observer, type) are
        never copied.  Existing actions are updated in place; new ones
        are appended.
        """
        review = dto.review
        closure = dto.closure
        for name, value in (
            ("severity", dto.severity.value),
            ("status", dto.status.value),
            ("category", dto.category),
            ("description", dto.description),
            ("area_id", dto.area_id),
            ("location_area", dto.location_area),
            ("specific_location", dto.specific_location),
            ("immediate_action", dto.immediate_action),
            ("root_cause", dto.root_cause),
            ("reviewed_by", review.reviewed_by if review else None),
            ("reviewed_at", review.reviewed_at if review else None),
            ("review_decision", review.decision.value if review else None),
            ("review_comments", review.comments if review else None),
            ("reassign_reason", review.reassign_reason if review else None),
            ("closure_decided_by", closure.decided_by if closure else None),
            ("closure_decided_at", closure.decided_at if closure else None),
            ("closure_decision", closure.decision.value if closure else None),
            ("closure_comments", closure.comments if closure else None),
            ("completed_at", dto.completed_at),
            ("completed_by", dto.completed_by),
            ("updated_at", dto.updated_at),
        ):
            _assign(self, name, value)

        existing = {a.id: a for a in self.corrective_actions}
        for action in dto.corrective_actions:
            model = existing.get(action.id)
            if model is None:
                self.corrective_actions.append(CorrectiveActionModel.from_dto(action))
            else:
                model.apply_dto(action)


class CorrectiveActionModel(Base):
    """Persistent corrective action, owned by exactly one observation."""

    __tablename__ = "bbs_corrective_actions"

    __table_args__ = (
        UniqueConstraint("observation_id", "position", name="uq_bbs_actions_position"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed')",
            name="ck_bbs_actions_valid_status",
        ),
        CheckConstraint(
            "effectiveness_rating IS NULL OR effectiveness_rating BETWEEN 1 AND 5",
            name="ck_bbs_actions_rating_range",
        ),
        CheckConstraint(
            "(status = 'completed') = (completed_date IS NOT NULL)",
            name="ck_bbs_actions_completed_date",
        ),
        Index("ix_bbs_actions_assignee_status", "assigned_to", "status"),
    )

    observation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bbs_observations.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    assigned_to: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(nullable=True)
    completion_evidence: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    lessons_learned: Mapped[str | None] = mapped_column(Text, nullable=True)
    effectiveness_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evidence_photos: Mapped[list | None] = mapped_column(JSON, nullable=True)

    observation: Mapped[ObservationModel] = relationship(
        "ObservationModel", back_populates="corrective_actions",
    )

    def __repr__(self) -> str:
        return f"<CorrectiveAction {self.id} status={self.status}>"

    def to_dto(self) -> CorrectiveAction:
        return CorrectiveAction(
            id=self.id,
            action=self.action,
            assigned_to=self.assigned_to,
            position=self.position,
            priority=Priority(self.priority),
            due_date=self.due_date,
            status=ActionStatus(self.status),
            started_at=self.started_at,
            completed_date=self.completed_date,
            completion_evidence=self.completion_evidence,
            completion_comments=self.completion_comments,
            lessons_learned=self.lessons_learned,
            effectiveness_rating=self.effectiveness_rating,
            evidence_photos=tuple(self.evidence_photos or ()),
        )

    @classmethod
    def from_dto(cls, dto: CorrectiveAction) -> CorrectiveActionModel:
        return cls(
            id=dto.id,
            position=dto.position,
            action=dto.action,
            assigned_to=dto.assigned_to,
            priority=dto.priority.value,
            due_date=dto.due_date,
            status=dto.status.value,
            started_at=dto.started_at,
            completed_date=dto.completed_date,
            completion_evidence=dto.completion_evidence,
            completion_comments=dto.completion_comments,
            lessons_learned=dto.lessons_learned,
            effectiveness_rating=dto.effectiveness_rating,
            evidence_photos=list(dto.evidence_photos),
        )

    def apply_dto(self, dto: CorrectiveAction) -> None:
        for name, value in (
            ("status", dto.status.value),
            ("started_at", dto.started_at),
            ("completed_date", dto.completed_date),
            ("completion_evidence", dto.completion_evidence),
            ("completion_comments", dto.completion_comments),
            ("lessons_learned", dto.lessons_learned),
            ("effectiveness_rating", dto.effectiveness_rating),
            ("evidence_photos", list(dto.evidence_photos)),
        ):
            _assign(self, name, value)


class ObservationTransitionModel(Base):
    """Append-only history row, one per committed transition."""

    __tablename__ = "bbs_observation_transitions"

    __table_args__ = (
        UniqueConstraint("observation_id", "sequence", name="uq_bbs_transitions_sequence"),
    )

    observation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bbs_observations.id"), nullable=False, index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    observation_version: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ObservationTransition {self.observation_id}#{self.sequence} "
            f"{self.event} {self.from_status}->{self.to_status}>"
        )

    def to_dto(self) -> TransitionRecord:
        return TransitionRecord(
            id=self.id,
            observation_id=self.observation_id,
            sequence=self.sequence,
            event=self.event,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            from_status=ObservationStatus(self.from_status) if self.from_status else None,
            to_status=ObservationStatus(self.to_status),
            occurred_at=self.occurred_at,
            detail=dict(self.detail or {}),
        )
