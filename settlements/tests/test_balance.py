"""
Unit Tests for the Balance Calculator

Tests cover:
1. Balance arithmetic, including the empty case
2. Adjustment scoping (global, customer, sale)
3. Transaction history completeness and ordering
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import UUID, uuid4

from settlements.balance import BalanceCalculator
from settlements.exceptions import BalanceCalculationError
from settlements.models import (
    CreateAdjustmentRequest,
    CreateCustomerRequest,
    CreatePayoutRequest,
    CreateSaleRequest,
    HistoryEntryType,
    PayoutStatus,
    SaleStatus,
)
from settlements.service import AdjustmentService, CustomerService, PayoutService, SaleService
from settlements.storage import ADJUSTMENTS, PAYOUTS, SALES, InMemoryStorage


BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_customer(storage: InMemoryStorage) -> UUID:
    return CustomerService(storage).create(CreateCustomerRequest(name="Ana", surname="Lopez")).id


class TestBalanceCalculation:
    """Tests for calculate_balance."""

    def test_empty_customer_has_zero_balance(self):
        """No records at all yields zero for every total."""
        storage = InMemoryStorage()
        calculator = BalanceCalculator(storage)
        customer_id = make_customer(storage)

        summary = calculator.calculate_balance(customer_id)

        assert summary.total_sales == Decimal("0")
        assert summary.total_payouts == Decimal("0")
        assert summary.total_adjustments == Decimal("0")
        assert summary.balance == Decimal("0")

    def test_sale_payout_and_global_adjustment(self):
        """200 sold, 80 paid out, +20 adjusted leaves 140."""
        storage = InMemoryStorage()
        customer_id = make_customer(storage)
        sale_id = SaleService(storage).create(
            CreateSaleRequest(amount=Decimal("200"), customer_id=customer_id)
        ).id
        payouts = PayoutService(storage)
        payouts.process(payouts.create(CreatePayoutRequest(amount=Decimal("80"), sale_id=sale_id)).id)
        AdjustmentService(storage).create(CreateAdjustmentRequest(amount=Decimal("20")))

        summary = BalanceCalculator(storage).calculate_balance(customer_id)

        assert summary.customer_id == customer_id
        assert summary.total_sales == Decimal("200")
        assert summary.total_payouts == Decimal("80")
        assert summary.total_adjustments == Decimal("20")
        assert summary.balance == Decimal("140")

    def test_payouts_of_every_status_count(self):
        """Pending and failed payouts are included in the payout total."""
        storage = InMemoryStorage()
        customer_id = make_customer(storage)
        sale_id = SaleService(storage).create(
            CreateSaleRequest(amount=Decimal("100"), customer_id=customer_id)
        ).id
        payouts = PayoutService(storage)
        for amount, status in (("10", PayoutStatus.PENDING), ("15", PayoutStatus.FAILED),
                               ("25", PayoutStatus.COMPLETED)):
            payouts.create(CreatePayoutRequest(amount=Decimal(amount), sale_id=sale_id, status=status))

        summary = BalanceCalculator(storage).calculate_balance(customer_id)

        assert summary.total_payouts == Decimal("50")
        assert summary.balance == summary.total_sales - summary.total_payouts + summary.total_adjustments
        assert summary.balance == Decimal("50")

    def test_other_customers_records_are_excluded(self):
        """Sales, payouts and scoped adjustments of another customer are ignored."""
        storage = InMemoryStorage()
        sales = SaleService(storage)
        adjustments = AdjustmentService(storage)
        mine = make_customer(storage)
        theirs = make_customer(storage)
        my_sale = sales.create(CreateSaleRequest(amount=Decimal("100"), customer_id=mine)).id
        their_sale = sales.create(CreateSaleRequest(amount=Decimal("900"), customer_id=theirs)).id
        PayoutService(storage).create(CreatePayoutRequest(amount=Decimal("300"), sale_id=their_sale))

        adjustments.create(CreateAdjustmentRequest(amount=Decimal("-5")))
        adjustments.create(CreateAdjustmentRequest(amount=Decimal("7"), customer_id=mine))
        adjustments.create(CreateAdjustmentRequest(amount=Decimal("11"), sale_id=my_sale))
        adjustments.create(CreateAdjustmentRequest(amount=Decimal("1000"), customer_id=theirs))
        adjustments.create(CreateAdjustmentRequest(amount=Decimal("2000"), sale_id=their_sale))

        summary = BalanceCalculator(storage).calculate_balance(mine)

        assert summary.total_sales == Decimal("100")
        assert summary.total_payouts == Decimal("0")
        assert summary.total_adjustments == Decimal("13")
        assert summary.balance == Decimal("113")

    def test_read_failure_is_wrapped(self):
        """A failing store read surfaces as BalanceCalculationError with its cause."""
        storage = InMemoryStorage()
        calculator = BalanceCalculator(storage)

        with patch.object(storage, "find", side_effect=RuntimeError("store unavailable")):
            with pytest.raises(BalanceCalculationError) as exc_info:
                calculator.calculate_balance(uuid4())

        assert isinstance(exc_info.value.cause, RuntimeError)


class TestTransactionHistory:
    """Tests for get_transaction_history."""

    def _seed(self, storage: InMemoryStorage, customer_id: UUID) -> UUID:
        with storage.begin() as tx:
            sale = tx.insert(SALES, {"amount": Decimal("100"), "status": SaleStatus.ACTIVE,
                                     "customer_id": customer_id, "created_at": BASE_TIME})
            tx.insert(PAYOUTS, {"amount": Decimal("30"), "status": PayoutStatus.PENDING,
                                "sale_id": sale["id"], "created_at": BASE_TIME + timedelta(days=2)})
            tx.insert(PAYOUTS, {"amount": Decimal("20"), "status": PayoutStatus.COMPLETED,
                                "sale_id": sale["id"], "created_at": BASE_TIME + timedelta(days=1)})
            tx.insert(ADJUSTMENTS, {"amount": Decimal("-4"), "customer_id": None, "sale_id": None,
                                    "created_at": BASE_TIME + timedelta(days=3)})
        return sale["id"]

    def test_history_is_complete_and_newest_first(self):
        storage = InMemoryStorage()
        customer_id = uuid4()
        self._seed(storage, customer_id)

        history = BalanceCalculator(storage).get_transaction_history(customer_id)

        assert len(history) == 4
        assert [e.type for e in history] == [
            HistoryEntryType.ADJUSTMENT,
            HistoryEntryType.PAYOUT,
            HistoryEntryType.PAYOUT,
            HistoryEntryType.SALE,
        ]
        assert [e.amount for e in history] == [Decimal("-4"), Decimal("30"), Decimal("20"), Decimal("100")]
        timestamps = [e.timestamp for e in history]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_history_entries_carry_status(self):
        storage = InMemoryStorage()
        customer_id = uuid4()
        self._seed(storage, customer_id)

        history = BalanceCalculator(storage).get_transaction_history(customer_id)
        by_type = {e.type: e for e in history}

        assert by_type[HistoryEntryType.SALE].status == "active"
        assert by_type[HistoryEntryType.ADJUSTMENT].status is None

    def test_equal_timestamps_keep_record_set_order(self):
        storage = InMemoryStorage()
        customer_id = uuid4()
        with storage.begin() as tx:
            tx.insert(ADJUSTMENTS, {"amount": Decimal("1"), "customer_id": customer_id,
                                    "sale_id": None, "created_at": BASE_TIME})
            tx.insert(SALES, {"amount": Decimal("9"), "status": SaleStatus.PENDING,
                              "customer_id": customer_id, "created_at": BASE_TIME})

        history = BalanceCalculator(storage).get_transaction_history(customer_id)

        assert [e.type for e in history] == [HistoryEntryType.SALE, HistoryEntryType.ADJUSTMENT]

    def test_empty_history(self):
        assert BalanceCalculator().get_transaction_history(uuid4()) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
