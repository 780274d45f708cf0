from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    WAIVED = "waived"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    WAIVER = "waiver"
    CARD = "card"


class BillingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    institution: str = ""
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = ""
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    postal_code: str = ""


class PaymentCreate(BaseModel):
    manuscript_id: str = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.STRIPE
    billing_address: BillingAddress


class Payment(BaseModel):
    id: str
    manuscript_id: str
    user_id: str
    amount: float = Field(..., ge=0)
    currency: str = "USD"
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod
    base_fee: float = Field(..., ge=0)
    discount_amount: float = Field(0, ge=0)
    discount_reason: str = ""
    waiver_reason: str = ""
    invoice_number: Optional[str] = None
    payment_intent_id: Optional[str] = None
    transaction_id: Optional[str] = None
    due_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    billing_address: Optional[BillingAddress] = None


class PaymentIntentResponse(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount: float
    currency: str
    status: str


class PaymentWaiveRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentConfirmRequest(BaseModel):
    transaction_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)
