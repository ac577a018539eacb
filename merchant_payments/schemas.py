import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from merchant_payments.config import DEFAULT_CURRENCY, SUPPORTED_CURRENCIES
from merchant_payments.models import PaymentMethodType

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Currency = Literal[SUPPORTED_CURRENCIES]


class InitiatePaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: Currency = DEFAULT_CURRENCY
    description: Optional[str] = Field(None, max_length=500)
    customer_email: str
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=50)
    payment_method_id: str
    callback_url: Optional[str] = None
    channels: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email address")
        return v


class CallbackRequest(BaseModel):
    reference: str = Field(..., min_length=1)
    status: Optional[str] = None
    trxref: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_reference: str
    amount: Decimal
    currency: str
    status: str
    description: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    failure_reason: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    payment_method_id: str
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PaymentMethodCreate(BaseModel):
    type: PaymentMethodType
    provider_name: str = Field(..., min_length=1, max_length=255)
    last_four_digits: Optional[str] = Field(None, max_length=50)
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    holder_name: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PaymentMethodUpdate(BaseModel):
    is_active: Optional[bool] = None
    holder_name: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PaymentMethodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    provider_name: str
    last_four_digits: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    holder_name: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="meta")
    is_active: bool
    created_at: datetime
