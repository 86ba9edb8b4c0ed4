"""
expense_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines (expense_engines/) with
    database sessions, the distance oracle and the kernel ledger, audit and
    month lock services.  This is the only layer that talks to the remote
    distance oracle or runs background work.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        expense_services/ -> expense_engines/  (allowed)
        expense_services/ -> expense_kernel/   (allowed)
        expense_engines/  -> expense_services/ (FORBIDDEN)
        expense_kernel/   -> expense_services/ (FORBIDDEN)

Invariants enforced:
    - DI transparency: per-transaction wiring is centralised in
      ExpenseOperations; services accept their collaborators as arguments.
"""

from expense_services.advance_service import AdvanceService
from expense_services.approval_service import ApprovalService
from expense_services.bulk_approval import BulkApprovalCoordinator
from expense_services.distance_service import (
    DistanceEstimator,
    DistanceOracle,
    DurationEnricher,
    GoogleDistanceMatrixOracle,
)
from expense_services.expense_service import ExpenseService
from expense_services.journey_service import JourneyService
from expense_services.operations import ExpenseOperations
from expense_services.results import OperationResult, to_payload

__all__ = [
    "AdvanceService",
    "ApprovalService",
    "BulkApprovalCoordinator",
    "DistanceEstimator",
    "DistanceOracle",
    "DurationEnricher",
    "ExpenseOperations",
    "ExpenseService",
    "GoogleDistanceMatrixOracle",
    "JourneyService",
    "OperationResult",
    "to_payload",
]
