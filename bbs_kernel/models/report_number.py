"""
Module: bbs_kernel.models.report_number
Responsibility: Counter rows backing human-readable report numbers.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    RN-1 -- One counter per (company, prefix, period); the unique constraint
            makes a concurrent first allocation fail loudly instead of
            producing two counters.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bbs_kernel.db.base import Base, UUIDString


class ReportNumberCounter(Base):
    """
    Report number counter table.

    Each row holds the last sequence issued for one company, prefix and
    period (the rendered date part of the number, e.g. ``240101``).
    Row-level locking ensures uniqueness under concurrency.
    """

    __tablename__ = "bbs_report_number_counters"

    __table_args__ = (
        UniqueConstraint("company_id", "prefix", "period", name="uq_bbs_report_counter"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ReportNumberCounter {self.prefix}{self.period} = {self.current_value}>"
