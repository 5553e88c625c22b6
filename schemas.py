"""
Validated input and output models for the order core operations.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    COD = "cod"
    PAYFIRST = "payfirst"


class PaymentStatus(str, Enum):
    COD = "cod"
    UNPAID = "unpaid"
    PAID = "paid"


# Request models

class Buyer(BaseModel):
    email: str = Field(min_length=3)
    user_id: Optional[str] = None


class CreateOrderInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    total_price: Optional[float] = Field(default=None, ge=0)
    first_name: str = ""
    last_name: str = ""
    contact_number: str = ""
    delivery_address: str = ""
    notes: str = ""
    payment_method: PaymentMethod = PaymentMethod.COD


class TrackingEntryInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    step: str = Field(min_length=1)
    location: str = ""
    note: str = ""
    milestone_status: str = Field(min_length=1)

    @field_validator("step", "milestone_status")
    @classmethod
    def strip_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CheckoutRequest(BaseModel):
    order_id: str = Field(min_length=1)


# Response models

class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    user_email: str
    product_id: str
    product_title: str
    quantity: int
    unit_price: float
    total_price: float
    first_name: str
    last_name: str
    contact_number: str
    delivery_address: str
    notes: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    ordered_at: datetime
    approved_at: Optional[datetime] = None


class OrderEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    payload_json: Optional[Dict[str, Any]] = None
    ts: Optional[datetime] = None


class TrackingEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step: str
    location: str
    note: str
    milestone_status: str
    timestamp: datetime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    order_id: str
    email: str
    amount: float
    currency: str
    status: str
    created_at: Optional[datetime] = None


class CheckoutHandle(BaseModel):
    session_id: str
    url: str


class SettlementResult(BaseModel):
    success: bool
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    duplicate: bool = False
