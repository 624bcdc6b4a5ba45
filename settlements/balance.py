"""
Balance and history aggregation for a customer.

Both operations read three record sets without a transaction: the customer's
sales, the payouts against those sales, and the adjustments in scope for the
customer. The sales and adjustments reads run concurrently; the payouts read
waits on the sales read because it filters by sale id. The three reads are
not isolated from each other, so a result may straddle a concurrent commit.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

from .config import settings
from .exceptions import BalanceCalculationError
from .models import Adjustment, BalanceSummary, HistoryEntry, HistoryEntryType, Payout, Sale
from .storage import ADJUSTMENTS, PAYOUTS, SALES, InMemoryStorage

logger = logging.getLogger(__name__)


class CustomerRecords(NamedTuple):
    sales: list[Sale]
    payouts: list[Payout]
    adjustments: list[Adjustment]


def _adjustment_in_scope(adjustment: Adjustment, customer_id: UUID, sale_ids: frozenset[UUID]) -> bool:
    if adjustment.is_global():
        return True
    return adjustment.customer_id == customer_id or adjustment.sale_id in sale_ids


class BalanceCalculator:
    def __init__(self, storage: Optional[InMemoryStorage] = None, max_workers: Optional[int] = None):
        self.storage = storage or InMemoryStorage()
        self.max_workers = max_workers or settings.BALANCE_READ_WORKERS

    def load_records(self, customer_id: UUID) -> CustomerRecords:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            sales_future = executor.submit(self.storage.find, SALES, customer_id=customer_id)
            adjustments_future = executor.submit(self.storage.find, ADJUSTMENTS)

            sales = [Sale(**s) for s in sales_future.result()]
            sale_ids = frozenset(sale.id for sale in sales)
            payouts_future = executor.submit(self.storage.find, PAYOUTS, sale_id=sale_ids)

            adjustments = [
                adjustment for adjustment in (Adjustment(**a) for a in adjustments_future.result())
                if _adjustment_in_scope(adjustment, customer_id, sale_ids)
            ]
            payouts = [Payout(**p) for p in payouts_future.result()]

        return CustomerRecords(sales=sales, payouts=payouts, adjustments=adjustments)

    def calculate_balance(self, customer_id: UUID) -> BalanceSummary:
        try:
            records = self.load_records(customer_id)
        except Exception as error:
            logger.exception("Balance calculation failed for customer %s", customer_id)
            raise BalanceCalculationError(f"Error calculating balance: {error}", cause=error) from error

        total_sales = sum((s.amount for s in records.sales), Decimal("0"))
        total_payouts = sum((p.amount for p in records.payouts), Decimal("0"))
        total_adjustments = sum((a.amount for a in records.adjustments), Decimal("0"))

        return BalanceSummary(
            customer_id=customer_id,
            total_sales=total_sales,
            total_payouts=total_payouts,
            total_adjustments=total_adjustments,
            balance=total_sales - total_payouts + total_adjustments,
        )

    def get_transaction_history(self, customer_id: UUID) -> list[HistoryEntry]:
        try:
            records = self.load_records(customer_id)
        except Exception as error:
            logger.exception("Transaction history failed for customer %s", customer_id)
            raise BalanceCalculationError(f"Error retrieving transaction history: {error}", cause=error) from error

        history = [
            *(HistoryEntry(type=HistoryEntryType.SALE, amount=s.amount, status=s.status.value,
                           timestamp=s.created_at) for s in records.sales),
            *(HistoryEntry(type=HistoryEntryType.PAYOUT, amount=p.amount, status=p.status.value,
                           timestamp=p.created_at) for p in records.payouts),
            *(HistoryEntry(type=HistoryEntryType.ADJUSTMENT, amount=a.amount,
                           timestamp=a.created_at) for a in records.adjustments),
        ]

        # Stable: equal timestamps keep sales, payouts, adjustments order
        history.sort(key=lambda e: e.timestamp, reverse=True)
        return history
