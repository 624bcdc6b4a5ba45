"""
Sales Settlement Ledger

This module provides:
- Sales, payouts and standalone balance adjustments over one store
- Sale status reconciliation as payouts complete, update or disappear
- All-or-nothing transactions with optimistic version checks
- Customer balance and merged transaction history
"""

from .models import (
    SaleStatus,
    PayoutStatus,
    Customer,
    Sale,
    Payout,
    Adjustment,
    BalanceSummary,
    HistoryEntry,
)
from .storage import InMemoryStorage, Transaction
from .service import (
    SaleStatusReconciler,
    PayoutService,
    CustomerService,
    SaleService,
    AdjustmentService,
)
from .balance import BalanceCalculator

__all__ = [
    "SaleStatus",
    "PayoutStatus",
    "Customer",
    "Sale",
    "Payout",
    "Adjustment",
    "BalanceSummary",
    "HistoryEntry",
    "InMemoryStorage",
    "Transaction",
    "SaleStatusReconciler",
    "PayoutService",
    "CustomerService",
    "SaleService",
    "AdjustmentService",
    "BalanceCalculator",
]
