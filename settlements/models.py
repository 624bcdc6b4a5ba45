from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class SaleStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INCOMPLETE = "incomplete"
    DISPUTED = "disputed"
    COMPLETED = "completed"


class PayoutStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class HistoryEntryType(str, Enum):
    SALE = "sale"
    PAYOUT = "payout"
    ADJUSTMENT = "adjustment"


# Stored entities

class Customer(BaseModel):
    id: UUID
    name: str
    surname: str
    created_at: datetime
    version: int = 1

    model_config = ConfigDict(from_attributes=True)


class Sale(BaseModel):
    id: UUID
    amount: Decimal
    status: SaleStatus = SaleStatus.ACTIVE
    customer_id: UUID
    created_at: datetime
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    def is_completed(self) -> bool:
        return self.status == SaleStatus.COMPLETED


class Payout(BaseModel):
    id: UUID
    amount: Decimal
    status: PayoutStatus = PayoutStatus.PENDING
    sale_id: UUID
    adjustment_id: Optional[UUID] = None
    created_at: datetime
    version: int = 1

    model_config = ConfigDict(from_attributes=True)


class Adjustment(BaseModel):
    id: UUID
    amount: Decimal
    customer_id: Optional[UUID] = None
    sale_id: Optional[UUID] = None
    created_at: datetime
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    def is_global(self) -> bool:
        return self.customer_id is None and self.sale_id is None


# Requests

class CreateCustomerRequest(BaseModel):
    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)


class UpdateCustomerRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    surname: Optional[str] = Field(default=None, min_length=1)


class CreateSaleRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    customer_id: UUID
    status: SaleStatus = SaleStatus.ACTIVE

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 200.00,
            "customer_id": "550e8400-e29b-41d4-a716-446655440000",
            "status": "active"
        }
    })


class UpdateSaleRequest(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    status: Optional[SaleStatus] = None


class CreatePayoutRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    sale_id: UUID
    status: PayoutStatus = PayoutStatus.PENDING
    adjustment_id: Optional[UUID] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 80.00,
            "sale_id": "770e8400-e29b-41d4-a716-446655440002",
            "status": "pending"
        }
    })


class UpdatePayoutRequest(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    status: Optional[PayoutStatus] = None
    sale_id: Optional[UUID] = None
    adjustment_id: Optional[UUID] = None


class CreateAdjustmentRequest(BaseModel):
    amount: Decimal = Field(..., description="Signed correction applied to the balance")
    customer_id: Optional[UUID] = None
    sale_id: Optional[UUID] = None


class UpdateAdjustmentRequest(BaseModel):
    amount: Optional[Decimal] = None
    customer_id: Optional[UUID] = None
    sale_id: Optional[UUID] = None


# Responses

class ActionResponse(BaseModel):
    message: str
    id: Optional[UUID] = None


class BalanceSummary(BaseModel):
    customer_id: UUID
    total_sales: Decimal
    total_payouts: Decimal
    total_adjustments: Decimal
    balance: Decimal


class HistoryEntry(BaseModel):
    type: HistoryEntryType
    amount: Decimal
    status: Optional[str] = None
    timestamp: datetime
