from uuid import UUID
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .balance import BalanceCalculator
from .config import settings
from .exceptions import NotFoundError, SettlementError, ValidationError, root_cause
from .logging import setup_logging
from .models import (
    ActionResponse, Adjustment, BalanceSummary, CreateAdjustmentRequest, CreateCustomerRequest,
    CreatePayoutRequest, CreateSaleRequest, Customer, HistoryEntry, Payout, Sale,
    UpdateAdjustmentRequest, UpdateCustomerRequest, UpdatePayoutRequest, UpdateSaleRequest,
)
from .service import AdjustmentService, CustomerService, PayoutService, SaleService
from .storage import InMemoryStorage

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

app = FastAPI(
    title="Sales Settlement API",
    description="Sales, payouts and adjustments with payout reconciliation and customer balances",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

storage = InMemoryStorage(seed=settings.SEED_DEMO_DATA)
customer_service = CustomerService(storage)
sale_service = SaleService(storage)
adjustment_service = AdjustmentService(storage)
payout_service = PayoutService(storage)
balance_calculator = BalanceCalculator(storage)


def _http_error(error: SettlementError) -> HTTPException:
    cause = root_cause(error)
    if isinstance(cause, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(cause))
    if isinstance(cause, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(cause))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Operation failed")


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "sales-settlement"}


# Customers

@app.post("/customer", response_model=ActionResponse, status_code=status.HTTP_201_CREATED, tags=["Customers"])
def create_customer(request: CreateCustomerRequest) -> ActionResponse:
    try:
        return customer_service.create(request)
    except SettlementError as e:
        raise _http_error(e)


@app.get("/customer", response_model=list[Customer], tags=["Customers"])
def list_customers() -> list[Customer]:
    return customer_service.list_all()


@app.get("/customer/{customer_id}", response_model=Customer, tags=["Customers"])
def get_customer(customer_id: UUID) -> Customer:
    try:
        return customer_service.get(customer_id)
    except SettlementError as e:
        raise _http_error(e)


@app.put("/customer/{customer_id}", response_model=Customer, tags=["Customers"])
def update_customer(customer_id: UUID, request: UpdateCustomerRequest) -> Customer:
    try:
        return customer_service.update(customer_id, request)
    except SettlementError as e:
        raise _http_error(e)


@app.delete("/customer/{customer_id}", response_model=ActionResponse, tags=["Customers"])
def delete_customer(customer_id: UUID) -> ActionResponse:
    try:
        return customer_service.delete(customer_id)
    except SettlementError as e:
        raise _http_error(e)


# Sales

@app.post("/sale", response_model=ActionResponse, status_code=status.HTTP_201_CREATED, tags=["Sales"])
def create_sale(request: CreateSaleRequest) -> ActionResponse:
    try:
        return sale_service.create(request)
    except SettlementError as e:
        raise _http_error(e)


@app.get("/sale", response_model=list[Sale], tags=["Sales"])
def list_sales() -> list[Sale]:
    return sale_service.list_all()


@app.get("/sale/{sale_id}", response_model=Sale, tags=["Sales"])
def get_sale(sale_id: UUID) -> Sale:
    try:
        return sale_service.get(sale_id)
    except SettlementError as e:
        raise _http_error(e)


@app.put("/sale/{sale_id}", response_model=Sale, tags=["Sales"])
def update_sale(sale_id: UUID, request: UpdateSaleRequest) -> Sale:
    try:
        return sale_service.update(sale_id, request)
    except SettlementError as e:
        raise _http_error(e)


@app.delete("/sale/{sale_id}", response_model=ActionResponse, tags=["Sales"])
def delete_sale(sale_id: UUID) -> ActionResponse:
    try:
        return sale_service.delete(sale_id)
    except SettlementError as e:
        raise _http_error(e)


# Adjustments

@app.post("/adjustment", response_model=ActionResponse, status_code=status.HTTP_201_CREATED, tags=["Adjustments"])
def create_adjustment(request: CreateAdjustmentRequest) -> ActionResponse:
    try:
        return adjustment_service.create(request)
    except SettlementError as e:
        raise _http_error(e)


@app.get("/adjustment", response_model=list[Adjustment], tags=["Adjustments"])
def list_adjustments() -> list[Adjustment]:
    return adjustment_service.list_all()


@app.get("/adjustment/{adjustment_id}", response_model=Adjustment, tags=["Adjustments"])
def get_adjustment(adjustment_id: UUID) -> Adjustment:
    try:
        return adjustment_service.get(adjustment_id)
    except SettlementError as e:
        raise _http_error(e)


@app.put("/adjustment/{adjustment_id}", response_model=Adjustment, tags=["Adjustments"])
def update_adjustment(adjustment_id: UUID, request: UpdateAdjustmentRequest) -> Adjustment:
    try:
        return adjustment_service.update(adjustment_id, request)
    except SettlementError as e:
        raise _http_error(e)


@app.delete("/adjustment/{adjustment_id}", response_model=ActionResponse, tags=["Adjustments"])
def delete_adjustment(adjustment_id: UUID) -> ActionResponse:
    try:
        return adjustment_service.delete(adjustment_id)
    except SettlementError as e:
        raise _http_error(e)


# Payouts

@app.post("/payout", response_model=ActionResponse, status_code=status.HTTP_201_CREATED, tags=["Payouts"])
def create_payout(request: CreatePayoutRequest) -> ActionResponse:
    try:
        return payout_service.create(request)
    except SettlementError as e:
        raise _http_error(e)


@app.get("/payout/{payout_id}", response_model=Payout, tags=["Payouts"])
def get_payout(payout_id: UUID) -> Payout:
    try:
        return payout_service.get(payout_id)
    except SettlementError as e:
        raise _http_error(e)


@app.put("/payout/{payout_id}", response_model=Payout, tags=["Payouts"])
def update_payout(payout_id: UUID, request: UpdatePayoutRequest) -> Payout:
    try:
        return payout_service.update(payout_id, request)
    except SettlementError as e:
        raise _http_error(e)


@app.post("/payout/process/{payout_id}", response_model=ActionResponse, tags=["Payouts"])
def process_payout(payout_id: UUID) -> ActionResponse:
    try:
        return payout_service.process(payout_id)
    except SettlementError as e:
        raise _http_error(e)


@app.delete("/payout/{payout_id}", response_model=ActionResponse, tags=["Payouts"])
def delete_payout(payout_id: UUID) -> ActionResponse:
    try:
        return payout_service.delete(payout_id)
    except SettlementError as e:
        raise _http_error(e)


# Balance

@app.get("/balance/history/{customer_id}", response_model=list[HistoryEntry], tags=["Balance"])
def get_transaction_history(customer_id: UUID) -> list[HistoryEntry]:
    try:
        return balance_calculator.get_transaction_history(customer_id)
    except SettlementError as e:
        raise _http_error(e)


@app.get("/balance/{customer_id}", response_model=BalanceSummary, tags=["Balance"])
def get_balance(customer_id: UUID) -> BalanceSummary:
    try:
        return balance_calculator.calculate_balance(customer_id)
    except SettlementError as e:
        raise _http_error(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
