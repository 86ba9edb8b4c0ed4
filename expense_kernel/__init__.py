"""
Expense Kernel

Persistence, ledger and period-control core for field expense tracking:
- Journeys, expenses and advances stored with Decimal precision
- Optimistically versioned employee advance balances
- Month locks that freeze historical periods
- Append-only audit trail
"""

__version__ = "0.1.0"
