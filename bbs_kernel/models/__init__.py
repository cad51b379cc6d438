"""ORM models for the BBS kernel."""

from bbs_kernel.models.observation import (
    CorrectiveActionModel,
    ObservationModel,
    ObservationTransitionModel,
)
from bbs_kernel.models.report_number import ReportNumberCounter

__all__ = [
    "CorrectiveActionModel",
    "ObservationModel",
    "ObservationTransitionModel",
    "ReportNumberCounter",
]
