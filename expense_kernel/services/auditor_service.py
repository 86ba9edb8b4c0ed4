"""
AuditorService -- append-only action log written as a side channel.

Responsibility:
    Records one AuditEntry per significant action (journey started, expense
    approved, month locked ...) and answers trace queries over them.

Architecture position:
    Kernel > Services -- imperative shell, called by every service that
    mutates state.

Invariants enforced:
    - Append-only: entries are never modified or deleted (ORM listeners in
      db/immutability.py).
    - Failure isolation: each entry is written inside its own SAVEPOINT.
      A failed write rolls back only that savepoint, is logged, and returns
      None; the triggering operation carries on.

Failure modes:
    - None propagate from ``record``.  SQLAlchemy errors and unserializable
      payloads are logged as ``audit_write_failed``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_entry import AuditAction, AuditEntry
from expense_kernel.services.sequence_service import SequenceService

logger = get_logger("services.auditor")


def _json_safe(value: Any) -> Any:
    """Convert a payload into JSON column friendly primitives."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return _json_safe(value.value)
    if isinstance(value, (UUID, date, datetime)):
        return str(value) if isinstance(value, UUID) else value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    raise TypeError(f"Cannot store {type(value).__name__} in audit details")


@dataclass(frozen=True)
class AuditTraceEntry:
    action: str
    actor_id: UUID
    occurred_at: datetime
    details: dict[str, Any]
    expense_id: UUID | None = None
    journey_id: UUID | None = None
    advance_id: UUID | None = None


class AuditorService:
    """
    Writes and reads audit entries.

    Contract:
        ``record`` never raises.  It returns the persisted entry, or None
        when the write failed.

    Non-goals:
        - Does NOT commit; the entry becomes durable with the caller's
          transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        action: AuditAction,
        actor_id: UUID,
        *,
        target_employee_id: UUID | None = None,
        expense_id: UUID | None = None,
        journey_id: UUID | None = None,
        advance_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        try:
            with self._session.begin_nested():
                entry = AuditEntry(
                    seq=self._sequences.next_value(SequenceService.AUDIT_ENTRY),
                    action=AuditAction(action).value,
                    actor_id=actor_id,
                    target_employee_id=target_employee_id,
                    expense_id=expense_id,
                    journey_id=journey_id,
                    advance_id=advance_id,
                    details=_json_safe(details or {}),
                    occurred_at=self._clock.now(),
                )
                self._session.add(entry)
                self._session.flush()
        except (SQLAlchemyError, TypeError, ValueError):
            logger.error(
                "audit_write_failed",
                extra={"action": str(getattr(action, "value", action))},
                exc_info=True,
            )
            return None

        logger.debug("audit_recorded", extra={"action": entry.action, "audit_id": str(entry.id)})
        return entry

    def trace(
        self,
        *,
        target_employee_id: UUID | None = None,
        expense_id: UUID | None = None,
        journey_id: UUID | None = None,
        action: AuditAction | None = None,
    ) -> tuple[AuditTraceEntry, ...]:
        """Entries matching every given filter, in recording order."""
        stmt = select(AuditEntry)
        if target_employee_id is not None:
            stmt = stmt.where(AuditEntry.target_employee_id == target_employee_id)
        if expense_id is not None:
            stmt = stmt.where(AuditEntry.expense_id == expense_id)
        if journey_id is not None:
            stmt = stmt.where(AuditEntry.journey_id == journey_id)
        if action is not None:
            stmt = stmt.where(AuditEntry.action == AuditAction(action).value)
        stmt = stmt.order_by(AuditEntry.seq)

        return tuple(
            AuditTraceEntry(
                action=row.action,
                actor_id=row.actor_id,
                occurred_at=row.occurred_at,
                details=dict(row.details or {}),
                expense_id=row.expense_id,
                journey_id=row.journey_id,
                advance_id=row.advance_id,
            )
            for row in self._session.execute(stmt).scalars()
        )
