"""
ReportNumberService -- human-readable report numbers via locked counter rows.

Responsibility:
    Issue ``prefix + date + sequence`` numbers (``BBS24010101``) that are
    unique per company.  Uses a counter row per (company, prefix, period)
    with row-level locking, never a max-plus-one query.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ObservationStore inside the creation transaction.

Invariants enforced:
    RN-1 -- Uniqueness: the locked counter row is the sole source of the
            next sequence; ``bbs_observations.report_number`` is UNIQUE.
    RN-2 -- Transactional: the increment is only visible after the
            caller's transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError on a concurrent first allocation of the same counter,
      handled via savepoint rollback and a locked re-read.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bbs_kernel.domain.numbering import ReportNumberFormat
from bbs_kernel.exceptions import ReportNumberError
from bbs_kernel.logging_config import get_logger
from bbs_kernel.models.report_number import ReportNumberCounter

logger = get_logger("services.report_numbers")


class ReportNumberService:
    """
    Service for allocating report numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, number_format: ReportNumberFormat | None = None):
        self._session = session
        self._format = number_format or ReportNumberFormat()

    def _locked_counter(self, company_id: UUID, period: str) -> ReportNumberCounter | None:
        return self._session.execute(
            select(ReportNumberCounter)
            .where(
                ReportNumberCounter.company_id == company_id,
                ReportNumberCounter.prefix == self._format.prefix,
                ReportNumberCounter.period == period,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_number(self, company_id: UUID, day: date) -> str:
        """
        Allocate the next report number for a company and day.

        Returns:
            The rendered report number, e.g. ``BBS24010101``.
        """
        period = self._format.period(day)
        counter = self._locked_counter(company_id, period)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = ReportNumberCounter(
                    company_id=company_id,
                    prefix=self._format.prefix,
                    period=period,
                    current_value=0,
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug(
                    "report_counter_race_retry",
                    extra={"prefix": self._format.prefix, "period": period},
                )
                savepoint.rollback()
                counter = self._locked_counter(company_id, period)
                if counter is None:
                    raise ReportNumberError(
                        f"{self._format.prefix}{period}", "counter vanished after insert race",
                    ) from None

        counter.current_value += 1
        self._session.flush()

        number = self._format.render(day, counter.current_value)
        logger.debug(
            "report_number_allocated",
            extra={"report_number": number, "sequence": counter.current_value},
        )
        return number

    def current_value(self, company_id: UUID, day: date) -> int:
        """Last sequence issued for the company and day (0 if none)."""
        value = self._session.execute(
            select(ReportNumberCounter.current_value).where(
                ReportNumberCounter.company_id == company_id,
                ReportNumberCounter.prefix == self._format.prefix,
                ReportNumberCounter.period == self._format.period(day),
            )
        ).scalar_one_or_none()
        return value or 0
