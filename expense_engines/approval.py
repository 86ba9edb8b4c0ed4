"""
expense_engines.approval -- Approved-amount arithmetic.

Responsibility:
    Picks the distance figure named by the approval option and prices an
    approval:

        distance_cost   = selected_distance * distance_rate
        approved_amount = amount + distance_cost        (rounded to 2 places)

    The same formula applies to journey and general expenses.  A journey
    expense's ``amount`` already holds ``final_distance * rate`` from journey
    completion, so approving it adds the distance cost a second time.  This
    is the established business rule and is kept as-is pending product
    clarification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by ApprovalService
    and by the journey total preview.

Failure modes:
    - InvalidApprovalOptionError: option not in {1, 2, 3}.
    - MissingAdminDistanceError: option 3 without an admin distance.
    - MissingRateError: distance rate missing or not positive.
    - InvalidDistanceError / InvalidAmountError: negative inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from expense_engines.tracer import traced_engine
from expense_kernel.domain.values import ZERO, ApprovalOption, as_decimal, round2
from expense_kernel.exceptions import (
    InvalidAmountError,
    InvalidApprovalOptionError,
    InvalidDistanceError,
    MissingAdminDistanceError,
    MissingRateError,
)


@dataclass(frozen=True)
class ApprovalComputation:
    option: ApprovalOption
    selected_distance: Decimal
    distance_cost: Decimal
    approved_amount: Decimal


def parse_option(option) -> ApprovalOption:
    """Coerce 1/2/3 (or an ApprovalOption) to ApprovalOption."""
    if isinstance(option, bool) or not isinstance(option, int):
        raise InvalidApprovalOptionError(option)
    try:
        return ApprovalOption(option)
    except ValueError as exc:
        raise InvalidApprovalOptionError(option) from exc


def _distance(field: str, value, default: Decimal | None = ZERO) -> Decimal | None:
    if value is None:
        return default
    result = as_decimal(value)
    if result is None or result < 0:
        raise InvalidDistanceError(field, value)
    return result


def select_distance(option, system_distance, manual_distance, admin_distance=None) -> Decimal:
    """
    Distance priced by ``option``: 1 system, 2 manual, 3 admin.

    A missing system or manual figure counts as zero; a missing admin figure
    under option 3 is an error.
    """
    chosen = parse_option(option)
    if chosen is ApprovalOption.SYSTEM:
        return _distance("system_distance", system_distance)
    if chosen is ApprovalOption.MANUAL:
        return _distance("manual_distance", manual_distance)
    admin = _distance("admin_distance", admin_distance, default=None)
    if admin is None:
        raise MissingAdminDistanceError()
    return admin


@traced_engine(
    "approval_amount",
    "1.0",
    fingerprint_fields=(
        "amount",
        "distance_rate",
        "option",
        "system_distance",
        "manual_distance",
        "admin_distance",
    ),
)
def compute_approved_amount(
    amount,
    distance_rate,
    option,
    system_distance,
    manual_distance=None,
    admin_distance=None,
) -> ApprovalComputation:
    """Price one approval.  See module docstring for the formula."""
    chosen = parse_option(option)
    selected = select_distance(chosen, system_distance, manual_distance, admin_distance)

    rate = as_decimal(distance_rate)
    if rate is None or rate <= 0:
        raise MissingRateError(distance_rate)

    base = as_decimal(amount)
    if base is None or base < 0:
        raise InvalidAmountError("amount", amount)

    distance_cost = selected * rate
    return ApprovalComputation(
        option=chosen,
        selected_distance=selected,
        distance_cost=round2(distance_cost),
        approved_amount=round2(base + distance_cost),
    )
