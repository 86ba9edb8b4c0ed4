"""
Module: expense_kernel.selectors.journey_selector
Responsibility: Scoped journey listing with status and start-date filters,
    newest first, plus the distance totals over the whole filtered set.
Architecture position: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from expense_kernel.domain.dtos import JourneyInfo
from expense_kernel.domain.values import round2
from expense_kernel.models.journey import Journey
from expense_kernel.selectors.base import BaseSelector, Page, sort_column
from expense_kernel.selectors.scope import QueryScope

_SORTABLE = {
    "start_time": Journey.start_time,
    "end_time": Journey.end_time,
    "status": Journey.status,
    "calculated_distance": Journey.calculated_distance,
}


@dataclass(frozen=True)
class JourneyPage(Page[JourneyInfo]):
    total_distance: Decimal = Decimal("0")

    @property
    def average_distance(self) -> Decimal:
        if not self.total:
            return Decimal("0")
        return round2(self.total_distance / self.total)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class JourneySelector(BaseSelector[Journey]):
    def list(
        self,
        scope: QueryScope,
        *,
        status: str | None = None,
        employee_id: UUID | None = None,
        started_from: date | None = None,
        started_to: date | None = None,
        sort: str = "-start_time",
        page: int = 1,
        page_size: int = 10,
    ) -> JourneyPage:
        """
        Journeys visible to ``scope``.  ``started_to`` is inclusive of the
        whole day.
        """
        order = sort_column(_SORTABLE, sort, "journeys")

        stmt = scope.apply(select(Journey), Journey.employee_id)
        if status is not None:
            stmt = stmt.where(Journey.status == status)
        if employee_id is not None:
            stmt = stmt.where(Journey.employee_id == employee_id)
        if started_from is not None:
            stmt = stmt.where(Journey.start_time >= _day_start(started_from))
        if started_to is not None:
            stmt = stmt.where(Journey.start_time < _day_start(started_to + timedelta(days=1)))

        filtered = stmt.subquery()
        distance = self.session.execute(
            select(func.coalesce(func.sum(filtered.c.calculated_distance), 0))
        ).scalar_one()

        rows, page, page_size = self._paginate(stmt, order, Journey.id, page, page_size)
        return JourneyPage(
            items=tuple(JourneyInfo.from_model(r) for r in rows),
            total=self._count(stmt),
            page=page,
            page_size=page_size,
            total_distance=round2(Decimal(str(distance))),
        )
