import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, JSON, Numeric, String
from merchant_payments.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethodType(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    DIGITAL_WALLET = "digital_wallet"


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=_uuid)
    merchant_id = Column(String(36), nullable=False, index=True)
    type = Column(String(32), nullable=False)                # PaymentMethodType value
    provider_name = Column(String(255), nullable=False)
    last_four_digits = Column(String(50))
    expiry_month = Column(String(100))
    expiry_year = Column(String(100))
    holder_name = Column(String(255))
    meta = Column("metadata", JSON)
    is_active = Column(Boolean, nullable=False, default=True)   # soft delete flag
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    payment_reference = Column(String(100), unique=True, index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)            # major currency units
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    description = Column(String(500))
    customer_email = Column(String(255))
    customer_name = Column(String(255))
    customer_phone = Column(String(50))
    meta = Column("metadata", JSON)
    failure_reason = Column(String(500))                       # only when status == failed
    gateway_transaction_id = Column(String(255))
    gateway_response = Column(JSON)                            # last raw gateway payload
    merchant_id = Column(String(36), nullable=False, index=True)
    payment_method_id = Column(String(36), nullable=False)
    processed_at = Column(DateTime(timezone=True))             # written once
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
