"""Read-only query selectors."""

from expense_kernel.selectors.advance_selector import AdvancePage, AdvanceSelector
from expense_kernel.selectors.base import MAX_PAGE_SIZE, Page
from expense_kernel.selectors.expense_selector import ExpensePage, ExpenseSelector
from expense_kernel.selectors.journey_selector import JourneyPage, JourneySelector
from expense_kernel.selectors.ledger_selector import LedgerSelector
from expense_kernel.selectors.scope import QueryScope, ScopeKind

__all__ = [
    "AdvancePage",
    "AdvanceSelector",
    "ExpensePage",
    "ExpenseSelector",
    "JourneyPage",
    "JourneySelector",
    "LedgerSelector",
    "MAX_PAGE_SIZE",
    "Page",
    "QueryScope",
    "ScopeKind",
]
