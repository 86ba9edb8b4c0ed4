"""
ApprovalService -- the pending -> approved / rejected state machine.

Responsibility:
    Approves or rejects one expense: access and lifecycle guards, month
    lock gate, approved-amount pricing (expense_engines.approval), journey
    running total, ledger debit and audit entry.

Architecture position:
    Services -- imperative shell.  Called by the operations facade and by
    BulkApprovalCoordinator (once per item, inside a savepoint).

Invariants enforced:
    - Only pending expenses move; approved and rejected are terminal
      (AlreadyProcessedError, plus ORM listeners in db/immutability.py).
    - approved_amount and approved_option are written once, here.
    - A locked month blocks approve and reject for every role.
    - Pricing runs before any mutation, so a validation failure leaves no
      partial state.
    - Reject never touches the balance or the journey total.

Failure modes:
    - AccessDeniedError, UnknownExpenseError, AlreadyProcessedError,
      PeriodLockedError, InvalidApprovalOptionError,
      MissingAdminDistanceError, MissingRateError, MissingReasonError,
      UnknownJourneyError, UnknownUserError, OptimisticLockError.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from expense_engines.approval import ApprovalComputation, compute_approved_amount
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import (
    Actor,
    ApprovalOutcome,
    ExpenseInfo,
    JourneyTotalChange,
)
from expense_kernel.domain.values import ApprovalOption, ExpenseStatus
from expense_kernel.exceptions import (
    AlreadyProcessedError,
    MissingReasonError,
    UnknownExpenseError,
    UnknownJourneyError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.expense import Expense
from expense_kernel.models.journey import Journey
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.ledger_service import LedgerService
from expense_kernel.services.month_lock_service import MonthLockService
from expense_services.access import require_approver, require_scope

logger = get_logger("services.approval")


class ApprovalService(BaseService[Expense]):
    """
    Single-expense approval and rejection.

    Contract:
        Flushes within the caller's transaction and returns DTOs.  The
        caller commits (facade) or releases the savepoint (bulk).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        ledger: LedgerService | None = None,
        month_locks: MonthLockService | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = ledger or LedgerService(session, self.clock)
        self._month_locks = month_locks or MonthLockService(
            session, self.clock, auditor=self._auditor
        )

    def _load_pending(self, expense_id: UUID, actor: Actor, action: str) -> Expense:
        require_approver(actor, action)
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise UnknownExpenseError(str(expense_id))
        require_scope(self.session, actor, expense.employee_id, action)
        if expense.status != ExpenseStatus.PENDING:
            raise AlreadyProcessedError(str(expense.id), ExpenseStatus(expense.status).value)
        return expense

    @staticmethod
    def price(
        expense: Expense,
        option=ApprovalOption.SYSTEM,
        admin_distance=None,
    ) -> ApprovalComputation:
        """Approved amount for ``expense`` under ``option`` (no mutation)."""
        return compute_approved_amount(
            amount=expense.amount,
            distance_rate=expense.distance_rate,
            option=option,
            system_distance=expense.system_distance,
            manual_distance=expense.manual_distance,
            admin_distance=admin_distance,
        )

    def preview_amount(self, expense: Expense, option=None) -> Decimal:
        """
        Estimated approved amount of a pending expense.

        Uses the stored option (default system) and counts a missing admin
        distance as zero.
        """
        chosen = option or expense.approved_option or ApprovalOption.SYSTEM
        admin = expense.admin_distance
        if int(chosen) == ApprovalOption.ADMIN and admin is None:
            admin = Decimal("0")
        return self.price(expense, chosen, admin).approved_amount

    def approve(
        self,
        expense_id: UUID,
        actor: Actor,
        option=ApprovalOption.SYSTEM,
        admin_distance=None,
        notes: str | None = None,
        *,
        bulk: bool = False,
    ) -> ApprovalOutcome:
        """
        Approve a pending expense.

        Postconditions:
            - status approved; approver, time, option, notes and (option 3)
              admin distance recorded.
            - Linked journey's additional_expenses_total += approved_amount.
            - Owner's balance debited by approved_amount.
        """
        expense = self._load_pending(expense_id, actor, "approve expenses")
        self._month_locks.ensure_unlocked(expense.employee_id, expense.expense_date, "approve")

        computation = self.price(expense, option, admin_distance)

        journey = None
        if expense.journey_id is not None:
            journey = self.session.get(Journey, expense.journey_id)
            if journey is None:
                raise UnknownJourneyError(str(expense.journey_id))

        expense.status = ExpenseStatus.APPROVED.value
        expense.approved_option = int(computation.option)
        expense.approved_amount = computation.approved_amount
        expense.approved_by_id = actor.id
        expense.approved_at = self.clock.now()
        expense.admin_notes = notes
        expense.updated_by_id = actor.id
        expense.bulk_approved = bulk
        if computation.option is ApprovalOption.ADMIN:
            expense.admin_distance = computation.selected_distance

        journey_total = None
        if journey is not None:
            previous_total = Decimal(journey.additional_expenses_total or 0)
            journey.additional_expenses_total = previous_total + computation.approved_amount
            journey.updated_by_id = actor.id
            journey_total = JourneyTotalChange(
                journey_id=journey.id,
                previous=previous_total,
                current=previous_total + computation.approved_amount,
            )
        self.session.flush()

        balance = self._ledger.debit(expense.employee_id, computation.approved_amount)

        self._auditor.record(
            AuditAction.EXPENSE_BULK_APPROVED if bulk else AuditAction.EXPENSE_APPROVED,
            actor.id,
            target_employee_id=expense.employee_id,
            expense_id=expense.id,
            journey_id=expense.journey_id,
            details={
                "approved_option": int(computation.option),
                "approved_amount": computation.approved_amount,
                "distance_cost": computation.distance_cost,
                "admin_distance": admin_distance,
                "admin_notes": notes,
                "is_journey_expense": journey is not None,
                "balance_update": {
                    "previous": balance.previous,
                    "current": balance.current,
                    "deducted": computation.approved_amount,
                },
                "journey_update": (
                    None
                    if journey_total is None
                    else {
                        "journey_id": journey_total.journey_id,
                        "previous_total": journey_total.previous,
                        "new_total": journey_total.current,
                    }
                ),
            },
        )
        logger.info(
            "expense_approved",
            extra={
                "expense_id": str(expense.id),
                "employee_id": str(expense.employee_id),
                "approved_option": int(computation.option),
                "approved_amount": str(computation.approved_amount),
                "bulk": bulk,
            },
        )

        return ApprovalOutcome(
            expense=ExpenseInfo.from_model(expense),
            approved_amount=computation.approved_amount,
            distance_cost=computation.distance_cost,
            balance=balance,
            journey_total=journey_total,
        )

    def reject(self, expense_id: UUID, actor: Actor, reason: str | None) -> ExpenseInfo:
        """Reject a pending expense.  ``reason`` is mandatory and stored."""
        if reason is None or not str(reason).strip():
            raise MissingReasonError("reject an expense")
        expense = self._load_pending(expense_id, actor, "reject expenses")
        self._month_locks.ensure_unlocked(expense.employee_id, expense.expense_date, "reject")

        reason = str(reason).strip()
        expense.status = ExpenseStatus.REJECTED.value
        expense.rejection_reason = reason
        expense.rejected_by_id = actor.id
        expense.rejected_at = self.clock.now()
        expense.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.EXPENSE_REJECTED,
            actor.id,
            target_employee_id=expense.employee_id,
            expense_id=expense.id,
            journey_id=expense.journey_id,
            details={"rejection_reason": reason, "amount": expense.amount},
        )
        logger.info(
            "expense_rejected",
            extra={"expense_id": str(expense.id), "employee_id": str(expense.employee_id)},
        )
        return ExpenseInfo.from_model(expense)
