"""
Module: expense_kernel.selectors.scope
Responsibility: Role-tagged query scope -- which employees' records an actor
    may see or act on.
Architecture position: Kernel > Selectors.  Pure SQL expression building plus
    one read for ``covers``.

Rules:
    superadmin  -> every employee
    admin       -> employees whose ``assigned_to_id`` is the admin
    user        -> only themself
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import Select, exists, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import Role
from expense_kernel.models.employee import Employee


class ScopeKind(str, Enum):
    ALL = "all"
    ASSIGNED = "assigned"
    SELF = "self"


_KIND_BY_ROLE = {
    Role.SUPERADMIN: ScopeKind.ALL,
    Role.ADMIN: ScopeKind.ASSIGNED,
    Role.USER: ScopeKind.SELF,
}


@dataclass(frozen=True)
class QueryScope:
    actor_id: UUID
    kind: ScopeKind

    @classmethod
    def for_actor(cls, actor: Actor) -> QueryScope:
        return cls(actor_id=actor.id, kind=_KIND_BY_ROLE[Role(actor.role)])

    def employee_filter(self, employee_column) -> ColumnElement[bool] | None:
        """WHERE clause over an employee-id column, or None for no restriction."""
        if self.kind is ScopeKind.ALL:
            return None
        if self.kind is ScopeKind.ASSIGNED:
            assigned = select(Employee.id).where(Employee.assigned_to_id == self.actor_id)
            return employee_column.in_(assigned)
        return employee_column == self.actor_id

    def apply(self, stmt: Select, employee_column) -> Select:
        clause = self.employee_filter(employee_column)
        return stmt if clause is None else stmt.where(clause)

    def covers(self, session: Session, employee_id: UUID) -> bool:
        """True when ``employee_id`` falls inside this scope."""
        if self.kind is ScopeKind.ALL:
            return True
        if self.kind is ScopeKind.SELF:
            return employee_id == self.actor_id
        return bool(
            session.execute(
                select(
                    exists().where(
                        Employee.id == employee_id,
                        Employee.assigned_to_id == self.actor_id,
                    )
                )
            ).scalar()
        )
