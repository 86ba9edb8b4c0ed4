"""
Module: expense_kernel.selectors.base
Responsibility: Abstract base for read-only query selectors, plus the page
    type and pagination shared by the scoped listings.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return DTOs or computed values, not ORM instances.
    - Page sizes are clamped to 1..MAX_PAGE_SIZE; page numbers start at 1.
"""

from abc import ABC
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from expense_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
ItemType = TypeVar("ItemType")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[ItemType]):
    items: tuple[ItemType, ...]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.total else 0


def sort_column(sortable: dict, sort: str, what: str):
    """Resolve ``name`` or ``-name`` to an ordering clause."""
    column = sortable.get(sort.lstrip("-"))
    if column is None:
        raise ValueError(f"Cannot sort {what} by {sort!r}")
    return column.desc() if sort.startswith("-") else column.asc()


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    def _count(self, stmt: Select) -> int:
        return self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

    def _paginate(self, stmt: Select, order, tiebreak, page: int, page_size: int):
        """Rows of one page plus the clamped page number and size."""
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        rows = self.session.execute(
            stmt.order_by(order, tiebreak)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
        return list(rows), page, page_size
