"""
Access checks shared by the expense services.

Every check is expressed through QueryScope so role and assignment rules
live in one place.  Failures raise AccessDeniedError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import Role
from expense_kernel.exceptions import AccessDeniedError
from expense_kernel.logging_config import get_logger
from expense_kernel.selectors.scope import QueryScope

logger = get_logger("services.access")

APPROVER_ROLES = frozenset({Role.ADMIN, Role.SUPERADMIN})


def _deny(actor: Actor, employee_id: UUID | None, action: str) -> AccessDeniedError:
    logger.warning(
        "access_denied",
        extra={
            "actor_id": str(actor.id),
            "role": Role(actor.role).value,
            "employee_id": str(employee_id) if employee_id else None,
            "action": action,
        },
    )
    return AccessDeniedError(
        str(actor.id), str(employee_id) if employee_id else "any", action
    )


def require_approver(actor: Actor, action: str) -> None:
    """Only admins and superadmins may approve, reject or manage advances."""
    if Role(actor.role) not in APPROVER_ROLES:
        raise _deny(actor, None, action)


def require_superadmin(actor: Actor, action: str) -> None:
    if Role(actor.role) is not Role.SUPERADMIN:
        raise _deny(actor, None, action)


def require_scope(session: Session, actor: Actor, employee_id: UUID, action: str) -> None:
    """Target employee must fall inside the actor's query scope."""
    if not QueryScope.for_actor(actor).covers(session, employee_id):
        raise _deny(actor, employee_id, action)


def require_owner(actor: Actor, employee_id: UUID, action: str) -> None:
    if actor.id != employee_id:
        raise _deny(actor, employee_id, action)


def require_owner_or_scope(
    session: Session, actor: Actor, employee_id: UUID, action: str
) -> None:
    """Owners may always act on their own records; others need scope."""
    if actor.id == employee_id:
        return
    require_scope(session, actor, employee_id, action)
