"""Services for the BBS kernel (write side)."""

from bbs_kernel.services.aggregate_locks import AggregateLockRegistry
from bbs_kernel.services.observation_store import CREATE_EVENT, ObservationStore
from bbs_kernel.services.report_numbers import ReportNumberService

__all__ = [
    "CREATE_EVENT",
    "AggregateLockRegistry",
    "ObservationStore",
    "ReportNumberService",
]
