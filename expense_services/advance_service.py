"""
AdvanceService -- cash advances credited against future expenses.

Responsibility:
    Records advances, reverses them on cancel / soft delete, and answers the
    per-employee advance history (ledger replay).

Architecture position:
    Services -- imperative shell over LedgerService.

Invariants enforced:
    - Advances are added, cancelled or deleted by approvers whose scope covers
      the employee.
    - amount > 0; payment method from the PaymentMethod vocabulary.
    - The balance changes only through LedgerService (versioned CAS).
    - A completed, non-deleted advance that stops counting is reversed with a
      debit of its amount, so stored balance == replayed balance.
    - Advances are not subject to month locks.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import Actor, AdvanceInfo, BalanceChange, EmployeeInfo
from expense_kernel.domain.values import AdvanceStatus, PaymentMethod, as_decimal, round2
from expense_kernel.exceptions import (
    AdvanceStateError,
    InvalidAdvanceError,
    InvalidAmountError,
    UnknownAdvanceError,
    UnknownUserError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.advance import Advance
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.employee import Employee
from expense_kernel.selectors.advance_selector import AdvancePage, AdvanceSelector
from expense_kernel.selectors.scope import QueryScope
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.ledger_service import LedgerService
from expense_services.access import require_approver, require_owner_or_scope, require_scope
from expense_services.results import AdvanceHistory, AdvanceReceipt, AdvanceReversal

logger = get_logger("services.advance")


def reconciliation_note(change: BalanceChange, amount: Decimal) -> str:
    """Human-readable account of how an advance moved the balance."""
    previous = round2(change.previous)
    current = round2(change.current)
    added = round2(amount)
    if previous < 0:
        note = f"Previous balance: ₹{previous}. Added: ₹{added}. "
        if current >= 0:
            return note + f"Cleared negative balance and added ₹{current} surplus."
        return note + f"Added to negative balance. New balance: ₹{current}."
    return f"Added ₹{added} to existing balance of ₹{previous}."


class AdvanceService(BaseService[Advance]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        ledger: LedgerService | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or LedgerService(session, self.clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._reads = AdvanceSelector(session)

    def _get(self, advance_id: UUID) -> Advance:
        advance = self.session.get(Advance, advance_id)
        if advance is None or advance.is_deleted:
            raise UnknownAdvanceError(str(advance_id))
        return advance

    def add(
        self,
        employee_id: UUID,
        actor: Actor,
        amount,
        *,
        payment_method=PaymentMethod.BANK_TRANSFER,
        transaction_reference: str | None = None,
        description: str | None = None,
        notes: str | None = None,
    ) -> AdvanceReceipt:
        """Record a completed advance and credit the employee's balance."""
        require_approver(actor, "add advances")
        if self.session.get(Employee, employee_id) is None:
            raise UnknownUserError(str(employee_id))
        require_scope(self.session, actor, employee_id, "add advances")

        value = as_decimal(amount)
        if value is None or value <= 0:
            raise InvalidAmountError("amount", amount, "a positive number")
        try:
            method = PaymentMethod(payment_method or PaymentMethod.BANK_TRANSFER)
        except ValueError as exc:
            raise InvalidAdvanceError(
                f"Invalid payment method: {payment_method!r}", field="payment_method"
            ) from exc

        advance = Advance(
            employee_id=employee_id,
            amount=value,
            advance_date=self.clock.today(),
            payment_method=method.value,
            added_by_id=actor.id,
            transaction_reference=transaction_reference,
            description=description,
            notes=notes,
            status=AdvanceStatus.COMPLETED.value,
            created_by_id=actor.id,
        )
        self.session.add(advance)
        self.session.flush()

        change = self._ledger.credit(employee_id, value)
        note = reconciliation_note(change, value)

        self._auditor.record(
            AuditAction.ADVANCE_ADDED,
            actor.id,
            target_employee_id=employee_id,
            advance_id=advance.id,
            details={
                "amount": value,
                "previous_balance": change.previous,
                "new_balance": change.current,
                "payment_method": method,
                "reconciliation_note": note,
                "notes": notes,
            },
        )
        logger.info(
            "advance_added",
            extra={
                "advance_id": str(advance.id),
                "employee_id": str(employee_id),
                "amount": str(value),
                "new_balance": str(change.current),
            },
        )
        return AdvanceReceipt(
            advance=AdvanceInfo.from_model(advance), balance=change, reconciliation_note=note
        )

    def _reverse(self, advance: Advance) -> BalanceChange | None:
        if not advance.counts_towards_balance:
            return None
        return self._ledger.debit(advance.employee_id, advance.amount)

    def cancel(self, advance_id: UUID, actor: Actor, reason: str | None = None) -> AdvanceReversal:
        require_approver(actor, "cancel advances")
        advance = self._get(advance_id)
        require_scope(self.session, actor, advance.employee_id, "cancel advances")
        if advance.status == AdvanceStatus.CANCELLED:
            raise AdvanceStateError(str(advance.id), AdvanceStatus.CANCELLED.value)

        change = self._reverse(advance)
        advance.status = AdvanceStatus.CANCELLED.value
        advance.notes = reason or "Advance cancelled"
        advance.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.ADVANCE_CANCELLED,
            actor.id,
            target_employee_id=advance.employee_id,
            advance_id=advance.id,
            details={
                "amount": advance.amount,
                "reason": advance.notes,
                "balance_reversed": change is not None,
                "new_balance": change.current if change else None,
            },
        )
        logger.info("advance_cancelled", extra={"advance_id": str(advance.id)})
        return AdvanceReversal(advance=AdvanceInfo.from_model(advance), balance=change)

    def delete(self, advance_id: UUID, actor: Actor) -> AdvanceReversal:
        """Soft delete; the row stays for the audit trail."""
        require_approver(actor, "delete advances")
        advance = self._get(advance_id)
        require_scope(self.session, actor, advance.employee_id, "delete advances")

        change = self._reverse(advance)
        advance.is_deleted = True
        advance.deleted_at = self.clock.now()
        advance.deleted_by_id = actor.id
        advance.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.ADVANCE_DELETED,
            actor.id,
            target_employee_id=advance.employee_id,
            advance_id=advance.id,
            details={
                "amount": advance.amount,
                "balance_reversed": change is not None,
                "new_balance": change.current if change else None,
            },
        )
        logger.info("advance_deleted", extra={"advance_id": str(advance.id)})
        return AdvanceReversal(advance=AdvanceInfo.from_model(advance), balance=change)

    def history(self, employee_id: UUID, actor: Actor) -> AdvanceHistory:
        employee = self.session.get(Employee, employee_id)
        if employee is None:
            raise UnknownUserError(str(employee_id))
        require_owner_or_scope(self.session, actor, employee_id, "view advance history")
        replay = self._ledger.replay(employee_id)
        return AdvanceHistory(
            employee=EmployeeInfo.from_model(employee),
            ledger=replay,
            current_balance=replay.stored_balance,
        )

    def list(self, actor: Actor, *, employee_id: UUID | None = None, **filters) -> AdvancePage:
        """Live advances in the actor's scope; an explicit employee must be in scope."""
        if employee_id is not None:
            require_owner_or_scope(self.session, actor, employee_id, "view advances")
        return self._reads.list(QueryScope.for_actor(actor), employee_id=employee_id, **filters)
