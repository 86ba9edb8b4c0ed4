"""
BulkApprovalCoordinator -- many approvals with per-item failure isolation.

Responsibility:
    Runs ApprovalService.approve over a caller-ordered list of expense ids,
    after an optional variance filter, collecting successes and failures.

Architecture position:
    Services -- orchestration over ApprovalService.

Invariants enforced:
    - Input order: items are processed one at a time in the order given.
    - Isolation: each item runs inside its own SAVEPOINT.  A failing item
      rolls back only its own writes, is recorded in ``failed`` with its
      error code and reason, and the batch continues.  Earlier successes
      stay.
    - Malformed ids: an id that is not a UUID fails as UNKNOWN_EXPENSE for
      that item only.
    - Variance filter: with ``max_variance`` set, journey-type expenses
      whose system distance is positive, whose manual distance is present,
      and whose variance exceeds the threshold are skipped without an
      attempt and counted in ``filtered``.  Other expenses are never
      filtered.

Failure modes (whole batch):
    - EmptyBatchError, InvalidVarianceThresholdError,
      InvalidApprovalOptionError, AccessDeniedError (non-approver actor).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from expense_engines.approval import parse_option
from expense_engines.variance import variance_percent
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import ApprovalOption, ExpenseStatus, ExpenseType, as_decimal
from expense_kernel.exceptions import (
    EmptyBatchError,
    ExpenseKernelError,
    InvalidVarianceThresholdError,
    UnknownExpenseError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.expense import Expense
from expense_services.access import require_approver
from expense_services.approval_service import ApprovalService
from expense_services.results import BulkApprovalResult, BulkApprovedItem, BulkFailure

logger = get_logger("services.bulk_approval")


def _threshold(max_variance) -> Decimal | None:
    if max_variance is None:
        return None
    value = as_decimal(max_variance)
    if value is None or value < 0:
        raise InvalidVarianceThresholdError(max_variance)
    return value


def _expense_id(value) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError) as exc:
        raise UnknownExpenseError(str(value)) from exc


def exceeds_variance(expense: Expense, threshold: Decimal) -> bool:
    """True when a journey-type expense's variance is above ``threshold``."""
    if expense.expense_type != ExpenseType.JOURNEY:
        return False
    system = Decimal(expense.system_distance or 0)
    if system <= 0 or expense.manual_distance is None:
        return False
    return variance_percent(system, Decimal(expense.manual_distance)) > threshold


class BulkApprovalCoordinator:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        approvals: ApprovalService | None = None,
    ):
        self._session = session
        self._approvals = approvals or ApprovalService(session, clock)

    def bulk_approve(
        self,
        expense_ids: Sequence,
        actor: Actor,
        option=ApprovalOption.SYSTEM,
        max_variance=None,
        notes: str | None = None,
    ) -> BulkApprovalResult:
        require_approver(actor, "bulk approve expenses")
        if not expense_ids:
            raise EmptyBatchError()
        threshold = _threshold(max_variance)
        chosen = parse_option(option)

        approved: list[BulkApprovedItem] = []
        failed: list[BulkFailure] = []
        filtered: list[UUID] = []
        total_amount = Decimal("0")

        for raw_id in expense_ids:
            try:
                expense_id = _expense_id(raw_id)
            except UnknownExpenseError as exc:
                failed.append(BulkFailure(str(raw_id), exc.code, str(exc)))
                logger.warning(
                    "bulk_item_failed",
                    extra={"expense_id": str(raw_id), "error_code": exc.code},
                )
                continue

            if threshold is not None:
                candidate = self._session.get(Expense, expense_id)
                if (
                    candidate is not None
                    and candidate.status == ExpenseStatus.PENDING
                    and exceeds_variance(candidate, threshold)
                ):
                    filtered.append(expense_id)
                    logger.info(
                        "bulk_item_filtered",
                        extra={"expense_id": str(expense_id), "max_variance": str(threshold)},
                    )
                    continue

            with LogContext.bind(expense_id=expense_id):
                try:
                    with self._session.begin_nested():
                        outcome = self._approvals.approve(
                            expense_id, actor, chosen, notes=notes, bulk=True
                        )
                except ExpenseKernelError as exc:
                    failed.append(BulkFailure(expense_id, exc.code, str(exc)))
                    logger.warning(
                        "bulk_item_failed",
                        extra={"expense_id": str(expense_id), "error_code": exc.code},
                    )
                    continue
                except SQLAlchemyError as exc:
                    failed.append(BulkFailure(expense_id, "PERSISTENCE_ERROR", str(exc)))
                    logger.error(
                        "bulk_item_failed",
                        extra={"expense_id": str(expense_id), "error_code": "PERSISTENCE_ERROR"},
                        exc_info=True,
                    )
                    continue

            approved.append(
                BulkApprovedItem(
                    expense_id=outcome.expense.id,
                    employee_id=outcome.expense.employee_id,
                    approved_amount=outcome.approved_amount,
                    is_journey_expense=outcome.journey_total is not None,
                    balance=outcome.balance,
                    journey_total=outcome.journey_total,
                )
            )
            total_amount += outcome.approved_amount

        result = BulkApprovalResult(
            approved=tuple(approved),
            failed=tuple(failed),
            filtered=tuple(filtered),
            total_amount=total_amount,
            max_variance=threshold,
        )
        logger.info(
            "bulk_approval_completed",
            extra={
                "total_approved": result.total_approved,
                "total_failed": result.total_failed,
                "total_filtered": result.total_filtered,
                "total_amount": str(total_amount),
            },
        )
        return result
