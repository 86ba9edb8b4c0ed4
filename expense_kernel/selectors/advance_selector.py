"""
Module: expense_kernel.selectors.advance_selector
Responsibility: Scoped advance listing.  Soft-deleted advances are never
    listed.
Architecture position: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.dtos import AdvanceInfo
from expense_kernel.models.advance import Advance
from expense_kernel.selectors.base import BaseSelector, Page, sort_column
from expense_kernel.selectors.scope import QueryScope

_SORTABLE = {
    "advance_date": Advance.advance_date,
    "amount": Advance.amount,
    "created_at": Advance.created_at,
}


@dataclass(frozen=True)
class AdvancePage(Page[AdvanceInfo]):
    pass


class AdvanceSelector(BaseSelector[Advance]):
    def list(
        self,
        scope: QueryScope,
        *,
        status: str | None = None,
        employee_id: UUID | None = None,
        payment_method: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        sort: str = "-advance_date",
        page: int = 1,
        page_size: int = 10,
    ) -> AdvancePage:
        order = sort_column(_SORTABLE, sort, "advances")

        stmt = scope.apply(select(Advance), Advance.employee_id).where(
            Advance.is_deleted.is_(False)
        )
        if status is not None:
            stmt = stmt.where(Advance.status == status)
        if employee_id is not None:
            stmt = stmt.where(Advance.employee_id == employee_id)
        if payment_method is not None:
            stmt = stmt.where(Advance.payment_method == payment_method)
        if date_from is not None:
            stmt = stmt.where(Advance.advance_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Advance.advance_date <= date_to)

        rows, page, page_size = self._paginate(stmt, order, Advance.id, page, page_size)
        return AdvancePage(
            items=tuple(AdvanceInfo.from_model(r) for r in rows),
            total=self._count(stmt),
            page=page,
            page_size=page_size,
        )
