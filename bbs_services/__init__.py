"""
bbs_services -- Package init and public API.

Responsibility:
    Orchestration over the kernel store and the pure engines: the
    ``ObservationWorkflowService`` entry point, identity lookup, the
    optional risk advisor, and post-commit notifications.

Architecture position:
    Services -- composes engines + kernel + config.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        bbs_services/ -> bbs_engines/, bbs_kernel/, bbs_config/  (allowed)
        bbs_engines/  -> bbs_services/                            (FORBIDDEN)
        bbs_kernel/   -> bbs_services/                            (FORBIDDEN)

Invariants enforced:
    - DI transparency: all wiring happens in ``build_workflow_service``;
      no service constructs its own collaborators.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path

from sqlalchemy.orm import Session

from bbs_config import CompiledWorkflowConfig, get_active_config
from bbs_engines.lifecycle import LifecycleEvaluator
from bbs_kernel.db.immutability import register_immutability_listeners
from bbs_kernel.domain.actor import IdentityProvider
from bbs_kernel.domain.clock import Clock
from bbs_kernel.logging_config import get_logger
from bbs_kernel.services.aggregate_locks import AggregateLockRegistry
from bbs_kernel.services.observation_store import ObservationStore
from bbs_services.advisory import KeywordRiskAdvisor, NullRiskAdvisor, RiskAdvisor
from bbs_services.identity import StaticIdentityProvider
from bbs_services.notifications import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    Notice,
    NoticeKind,
    NotificationSink,
)
from bbs_services.workflow_service import ObservationWorkflowService

logger = get_logger("services")


def build_workflow_service(
    session_factory: Callable[[], Session],
    identity: IdentityProvider,
    config: CompiledWorkflowConfig | None = None,
    config_dir: Path | None = None,
    clock: Clock | None = None,
    advisor: RiskAdvisor | None = None,
    sinks: Iterable[NotificationSink] | None = None,
    locks: AggregateLockRegistry | None = None,
) -> ObservationWorkflowService:
    """Wire config, evaluator, store and service together.

    Registers the immutability listeners so no write path can skip them.
    """
    config = config or get_active_config(config_dir)
    register_immutability_listeners()

    evaluator = LifecycleEvaluator(config.capability_matrix)
    store = ObservationStore(
        session_factory,
        evaluator,
        clock=clock,
        locks=locks,
        lock_timeout_seconds=config.lock_timeout_seconds,
        number_format=config.number_format,
    )
    service = ObservationWorkflowService(
        store,
        identity,
        config.capability_matrix,
        advisor=advisor,
        sinks=sinks if sinks is not None else (LoggingNotificationSink(),),
    )
    logger.info(
        "workflow_service_built",
        extra={
            "config_id": config.config_id,
            "config_version": config.config_version,
            "checksum": config.checksum,
        },
    )
    return service


__all__ = [
    "InMemoryNotificationSink",
    "KeywordRiskAdvisor",
    "LoggingNotificationSink",
    "Notice",
    "NoticeKind",
    "NotificationSink",
    "NullRiskAdvisor",
    "ObservationWorkflowService",
    "RiskAdvisor",
    "StaticIdentityProvider",
    "build_workflow_service",
]
