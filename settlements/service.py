import logging
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from .config import settings
from .exceptions import (
    AdjustmentNotFoundError,
    ConcurrencyConflictError,
    CustomerNotFoundError,
    InvalidStateTransitionError,
    PayoutNotFoundError,
    SaleNotFoundError,
    SettlementError,
    TransactionFailedError,
)
from .models import (
    ActionResponse,
    Adjustment,
    CreateAdjustmentRequest,
    CreateCustomerRequest,
    CreatePayoutRequest,
    CreateSaleRequest,
    Customer,
    Payout,
    PayoutStatus,
    Sale,
    SaleStatus,
    UpdateAdjustmentRequest,
    UpdateCustomerRequest,
    UpdatePayoutRequest,
    UpdateSaleRequest,
)
from .storage import ADJUSTMENTS, CUSTOMERS, PAYOUTS, SALES, InMemoryStorage, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _changes(request: BaseModel, nullable: tuple[str, ...] = ()) -> dict:
    """Fields the client explicitly set, minus nulls on fields that can't be cleared."""
    return {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field in nullable
    }


class SaleStatusReconciler:
    """
    Recomputes a sale's status from the sum of its completed payouts.

    The sale row is always rewritten, even when the status stays the same, so
    its version moves and two transactions reconciling the same sale cannot
    both commit on a stale completed-sum.
    """

    def reconcile(self, tx: Transaction, sale_id: UUID) -> Sale:
        completed_amount = tx.aggregate_sum(
            PAYOUTS, "amount", sale_id=sale_id, status=PayoutStatus.COMPLETED
        )

        sale_data = tx.find_by_id(SALES, sale_id)
        if not sale_data:
            raise SaleNotFoundError(f"Sale {sale_id} not found")
        sale = Sale(**sale_data)

        new_status = sale.status
        if completed_amount >= sale.amount:
            new_status = SaleStatus.COMPLETED
        elif sale.is_completed():
            new_status = SaleStatus.PENDING

        if new_status != sale.status:
            logger.info(
                "Sale %s status %s -> %s (completed payouts %s of %s)",
                sale_id, sale.status.value, new_status.value, completed_amount, sale.amount,
            )

        return Sale(**tx.update_by_id(SALES, sale_id, {"status": new_status}))


class TransactionalService:
    """Runs units of work against the store, one Transaction per operation."""

    def __init__(self, storage: Optional[InMemoryStorage] = None, max_retries: Optional[int] = None):
        self.storage = storage or InMemoryStorage()
        self.max_retries = max_retries or settings.TRANSACTION_MAX_RETRIES

    def _run_in_transaction(self, operation: str, work: Callable[[Transaction], T]) -> T:
        for attempt in range(1, self.max_retries + 1):
            tx = self.storage.begin()
            try:
                result = work(tx)
            except Exception as error:
                tx.rollback()
                if isinstance(error, SettlementError):
                    logger.warning("%s failed: %s", operation, error)
                else:
                    logger.exception("%s failed unexpectedly", operation)
                raise TransactionFailedError(f"Transaction failed: {error}", cause=error) from error

            try:
                tx.commit()
            except ConcurrencyConflictError as conflict:
                if attempt < self.max_retries:
                    logger.info("%s hit a version conflict, retrying (attempt %d of %d)",
                                operation, attempt, self.max_retries)
                    continue
                logger.warning("%s gave up after %d conflicting attempts", operation, attempt)
                raise TransactionFailedError(f"Transaction failed: {conflict}", cause=conflict) from conflict
            return result
        raise TransactionFailedError(f"{operation} was never attempted")

    @staticmethod
    def _require_sale(tx: Transaction, sale_id: UUID) -> dict:
        sale = tx.find_by_id(SALES, sale_id)
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found")
        return sale

    @staticmethod
    def _require_customer(tx: Transaction, customer_id: UUID) -> dict:
        customer = tx.find_by_id(CUSTOMERS, customer_id)
        if not customer:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        return customer

    @staticmethod
    def _require_adjustment(tx: Transaction, adjustment_id: UUID) -> dict:
        adjustment = tx.find_by_id(ADJUSTMENTS, adjustment_id)
        if not adjustment:
            raise AdjustmentNotFoundError(f"Adjustment {adjustment_id} not found")
        return adjustment


class PayoutService(TransactionalService):
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        reconciler: Optional[SaleStatusReconciler] = None,
        max_retries: Optional[int] = None,
    ):
        super().__init__(storage, max_retries)
        self.reconciler = reconciler or SaleStatusReconciler()

    def create(self, request: CreatePayoutRequest) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            self._require_sale(tx, request.sale_id)
            if request.adjustment_id:
                self._require_adjustment(tx, request.adjustment_id)

            payout = tx.insert(PAYOUTS, {
                "amount": request.amount,
                "status": request.status,
                "sale_id": request.sale_id,
                "adjustment_id": request.adjustment_id,
                "created_at": _now(),
            })
            self.reconciler.reconcile(tx, request.sale_id)
            return ActionResponse(message="Payout created successfully", id=payout["id"])

        response = self._run_in_transaction("create payout", work)
        logger.info("Payout %s created for sale %s", response.id, request.sale_id)
        return response

    def get(self, payout_id: UUID) -> Payout:
        payout_data = self.storage.find_by_id(PAYOUTS, payout_id)
        if not payout_data:
            raise PayoutNotFoundError(f"Payout {payout_id} not found")
        return Payout(**payout_data)

    def update(self, payout_id: UUID, request: UpdatePayoutRequest) -> Payout:
        changes = _changes(request, nullable=("adjustment_id",))

        def work(tx: Transaction) -> Payout:
            if changes.get("status") == PayoutStatus.COMPLETED:
                raise InvalidStateTransitionError(
                    "Cannot update payout status to 'completed' directly. Use process instead."
                )

            existing = tx.find_by_id(PAYOUTS, payout_id)
            if not existing:
                raise PayoutNotFoundError(f"Payout {payout_id} not found")

            if changes.get("adjustment_id"):
                self._require_adjustment(tx, changes["adjustment_id"])
            if "sale_id" in changes:
                self._require_sale(tx, changes["sale_id"])

            updated = Payout(**tx.update_by_id(PAYOUTS, payout_id, changes))

            # Sales are deleted without cascading, so the payout may be orphaned
            if tx.find_by_id(SALES, updated.sale_id):
                self.reconciler.reconcile(tx, updated.sale_id)
            previous_sale_id = existing["sale_id"]
            if previous_sale_id != updated.sale_id and tx.find_by_id(SALES, previous_sale_id):
                self.reconciler.reconcile(tx, previous_sale_id)
            return updated

        return self._run_in_transaction("update payout", work)

    def process(self, payout_id: UUID) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            payout = tx.update_by_id(PAYOUTS, payout_id, {"status": PayoutStatus.COMPLETED})
            if not payout:
                raise PayoutNotFoundError(f"Payout {payout_id} not found")
            self.reconciler.reconcile(tx, payout["sale_id"])
            return ActionResponse(message="Payout processed successfully", id=payout_id)

        response = self._run_in_transaction("process payout", work)
        logger.info("Payout %s processed", payout_id)
        return response

    def delete(self, payout_id: UUID) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            deleted = tx.delete_by_id(PAYOUTS, payout_id)
            if not deleted:
                raise PayoutNotFoundError(f"Payout {payout_id} not found")
            # Sales are deleted without cascading to their payouts
            if tx.find_by_id(SALES, deleted["sale_id"]):
                self.reconciler.reconcile(tx, deleted["sale_id"])
            return ActionResponse(message="Payout deleted successfully", id=payout_id)

        response = self._run_in_transaction("delete payout", work)
        logger.info("Payout %s deleted", payout_id)
        return response


class CustomerService(TransactionalService):
    def create(self, request: CreateCustomerRequest) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            customer = tx.insert(CUSTOMERS, {**request.model_dump(), "created_at": _now()})
            return ActionResponse(message="Customer created successfully", id=customer["id"])

        return self._run_in_transaction("create customer", work)

    def get(self, customer_id: UUID) -> Customer:
        customer_data = self.storage.find_by_id(CUSTOMERS, customer_id)
        if not customer_data:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        return Customer(**customer_data)

    def list_all(self) -> list[Customer]:
        return [Customer(**c) for c in self.storage.find(CUSTOMERS)]

    def update(self, customer_id: UUID, request: UpdateCustomerRequest) -> Customer:
        def work(tx: Transaction) -> Customer:
            updated = tx.update_by_id(CUSTOMERS, customer_id, _changes(request))
            if not updated:
                raise CustomerNotFoundError(f"Customer {customer_id} not found")
            return Customer(**updated)

        return self._run_in_transaction("update customer", work)

    def delete(self, customer_id: UUID) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            if not tx.delete_by_id(CUSTOMERS, customer_id):
                raise CustomerNotFoundError(f"Customer {customer_id} not found")
            return ActionResponse(message="Customer deleted successfully", id=customer_id)

        return self._run_in_transaction("delete customer", work)


class SaleService(TransactionalService):
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        reconciler: Optional[SaleStatusReconciler] = None,
        max_retries: Optional[int] = None,
    ):
        super().__init__(storage, max_retries)
        self.reconciler = reconciler or SaleStatusReconciler()

    def create(self, request: CreateSaleRequest) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            self._require_customer(tx, request.customer_id)
            sale = tx.insert(SALES, {**request.model_dump(), "created_at": _now()})
            return ActionResponse(message="Sale created successfully", id=sale["id"])

        return self._run_in_transaction("create sale", work)

    def get(self, sale_id: UUID) -> Sale:
        sale_data = self.storage.find_by_id(SALES, sale_id)
        if not sale_data:
            raise SaleNotFoundError(f"Sale {sale_id} not found")
        return Sale(**sale_data)

    def list_all(self) -> list[Sale]:
        return [Sale(**s) for s in self.storage.find(SALES)]

    def update(self, sale_id: UUID, request: UpdateSaleRequest) -> Sale:
        changes = _changes(request)

        def work(tx: Transaction) -> Sale:
            if changes.get("status") == SaleStatus.COMPLETED:
                raise InvalidStateTransitionError(
                    "Cannot update sale status to 'completed' directly. Process its payouts instead."
                )
            if not tx.update_by_id(SALES, sale_id, changes):
                raise SaleNotFoundError(f"Sale {sale_id} not found")
            return self.reconciler.reconcile(tx, sale_id)

        return self._run_in_transaction("update sale", work)

    def delete(self, sale_id: UUID) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            if not tx.delete_by_id(SALES, sale_id):
                raise SaleNotFoundError(f"Sale {sale_id} not found")
            return ActionResponse(message="Sale deleted successfully", id=sale_id)

        return self._run_in_transaction("delete sale", work)


class AdjustmentService(TransactionalService):
    def _validate_scope(self, tx: Transaction, fields: dict) -> None:
        if fields.get("customer_id"):
            self._require_customer(tx, fields["customer_id"])
        if fields.get("sale_id"):
            self._require_sale(tx, fields["sale_id"])

    def create(self, request: CreateAdjustmentRequest) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            fields = request.model_dump()
            self._validate_scope(tx, fields)
            adjustment = tx.insert(ADJUSTMENTS, {**fields, "created_at": _now()})
            return ActionResponse(message="Adjustment created successfully", id=adjustment["id"])

        return self._run_in_transaction("create adjustment", work)

    def get(self, adjustment_id: UUID) -> Adjustment:
        adjustment_data = self.storage.find_by_id(ADJUSTMENTS, adjustment_id)
        if not adjustment_data:
            raise AdjustmentNotFoundError(f"Adjustment {adjustment_id} not found")
        return Adjustment(**adjustment_data)

    def list_all(self) -> list[Adjustment]:
        return [Adjustment(**a) for a in self.storage.find(ADJUSTMENTS)]

    def update(self, adjustment_id: UUID, request: UpdateAdjustmentRequest) -> Adjustment:
        changes = _changes(request, nullable=("customer_id", "sale_id"))

        def work(tx: Transaction) -> Adjustment:
            self._validate_scope(tx, changes)
            updated = tx.update_by_id(ADJUSTMENTS, adjustment_id, changes)
            if not updated:
                raise AdjustmentNotFoundError(f"Adjustment {adjustment_id} not found")
            return Adjustment(**updated)

        return self._run_in_transaction("update adjustment", work)

    def delete(self, adjustment_id: UUID) -> ActionResponse:
        def work(tx: Transaction) -> ActionResponse:
            if not tx.delete_by_id(ADJUSTMENTS, adjustment_id):
                raise AdjustmentNotFoundError(f"Adjustment {adjustment_id} not found")
            return ActionResponse(message="Adjustment deleted successfully", id=adjustment_id)

        return self._run_in_transaction("delete adjustment", work)
