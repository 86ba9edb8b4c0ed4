"""
Result records returned by the expense services and the operations facade.

``OperationResult`` is the only shape the facade hands back: a success flag,
a message, and either a JSON-friendly payload or the error kind and code of
the typed exception that stopped the operation.  ``to_payload`` converts
service DTOs into that payload, rounding every Decimal to 2 places.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from expense_kernel.domain.dtos import (
    AdvanceInfo,
    BalanceChange,
    EmployeeInfo,
    ExpenseInfo,
    JourneyInfo,
    JourneyTotalChange,
    LedgerReplay,
)
from expense_kernel.domain.values import round2
from expense_kernel.exceptions import ExpenseKernelError
from expense_kernel.selectors.advance_selector import AdvancePage
from expense_kernel.selectors.expense_selector import ExpensePage
from expense_kernel.selectors.journey_selector import JourneyPage


@dataclass(frozen=True)
class JourneyCompletion:
    """An ended journey and the pending expense it spawned."""

    journey: JourneyInfo
    expense: ExpenseInfo
    system_distance: Decimal
    manual_distance: Decimal | None
    final_distance: Decimal
    cost: Decimal
    distance_source: str
    machine_visit_cost: Decimal


@dataclass(frozen=True)
class JourneyExpenseTotal:
    journey_id: UUID
    journey_name: str | None
    approved_total: Decimal
    approved_count: int
    pending_amount: Decimal
    pending_expense_id: UUID | None
    total_amount: Decimal


@dataclass(frozen=True)
class ExpenseCreation:
    """``merged`` is True when the amount was added to the journey's existing expense."""

    expense: ExpenseInfo
    merged: bool = False
    added_amount: Decimal | None = None


@dataclass(frozen=True)
class AdvanceReceipt:
    advance: AdvanceInfo
    balance: BalanceChange
    reconciliation_note: str


@dataclass(frozen=True)
class AdvanceReversal:
    advance: AdvanceInfo
    balance: BalanceChange | None


@dataclass(frozen=True)
class AdvanceHistory:
    employee: EmployeeInfo
    ledger: LedgerReplay
    current_balance: Decimal


@dataclass(frozen=True)
class BulkApprovedItem:
    expense_id: UUID
    employee_id: UUID
    approved_amount: Decimal
    is_journey_expense: bool
    balance: BalanceChange
    journey_total: JourneyTotalChange | None = None


@dataclass(frozen=True)
class BulkFailure:
    expense_id: UUID | str
    error_code: str
    reason: str


@dataclass(frozen=True)
class BulkApprovalResult:
    approved: tuple[BulkApprovedItem, ...]
    failed: tuple[BulkFailure, ...]
    filtered: tuple[UUID, ...]
    total_amount: Decimal
    max_variance: Decimal | None

    @property
    def total_approved(self) -> int:
        return len(self.approved)

    @property
    def total_failed(self) -> int:
        return len(self.failed)

    @property
    def total_filtered(self) -> int:
        return len(self.filtered)

    @property
    def message(self) -> str:
        text = (
            f"Bulk approval completed. {self.total_approved} approved, "
            f"{self.total_failed} failed."
        )
        if self.filtered:
            text += (
                f" {self.total_filtered} expenses filtered out by variance threshold."
            )
        return text


_DERIVED_FIELDS = {
    BulkApprovalResult: ("total_approved", "total_failed", "total_filtered"),
    LedgerReplay: ("is_reconciled",),
    BalanceChange: ("delta",),
    ExpensePage: ("pages",),
    JourneyPage: ("pages", "average_distance"),
    AdvancePage: ("pages",),
}


def to_payload(value: Any) -> Any:
    """JSON-friendly copy of a result: Decimals rounded to 2 places."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return round2(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        payload = {f.name: to_payload(getattr(value, f.name)) for f in dataclasses.fields(value)}
        for name in _DERIVED_FIELDS.get(type(value), ()):
            payload[name] = to_payload(getattr(value, name))
        return payload
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(v) for v in value]
    raise TypeError(f"Cannot serialize {type(value).__name__}")


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str
    data: Any = None
    error_kind: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> OperationResult:
        return cls(success=True, message=message, data=to_payload(data))

    @classmethod
    def from_error(cls, exc: ExpenseKernelError) -> OperationResult:
        return cls(
            success=False,
            message=str(exc),
            error_kind=exc.kind,
            error_code=exc.code,
        )
