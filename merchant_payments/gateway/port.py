"""Payment gateway port (abstract interface).

The reconciler only talks to this contract, so a second gateway can be
added as another adapter without touching reconciliation code.
"""

import secrets
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

MINOR_UNITS_PER_MAJOR = 100

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str = "PAY") -> str:
    """Build a merchant-facing reference: ``PREFIX_<epoch ms>_<12 random chars>``."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(12))
    return f"{prefix}_{timestamp}_{suffix}".upper()


def to_minor_units(amount) -> int:
    """Convert a major-unit amount to the gateway's integer minor units (x100, half-up)."""
    value = Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount) -> Decimal:
    return (Decimal(str(amount)) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class InitializeResult:
    """Hosted-checkout session returned by the gateway."""

    authorization_url: str
    access_code: str
    reference: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VerifyResult:
    """Gateway's current view of a transaction, amount in major units."""

    status: str
    amount: Decimal
    currency: str
    reference: str
    gateway_transaction_id: str | None = None
    gateway_response: str | None = None
    paid_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookResult:
    """Outcome of a webhook authenticity check; event/data only set when valid."""

    is_valid: bool
    event: str = ""
    data: Any = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def initialize(
        self,
        email: str,
        amount: Decimal,
        currency: str,
        reference: str,
        callback_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        channels: list[str] | None = None,
    ) -> InitializeResult:
        """Open a hosted checkout for ``amount`` (major units)."""
        ...

    @abstractmethod
    async def verify(self, reference: str) -> VerifyResult:
        """Fetch the gateway's status for a transaction reference."""
        ...

    @abstractmethod
    def authenticate_webhook(
        self,
        raw_body: bytes,
        signature: str | None,
        source_ip: str | None = None,
    ) -> WebhookResult:
        """Verify that a webhook body is authentically from the gateway."""
        ...

    @abstractmethod
    async def resolve_account(self, account_number: str, bank_code: str) -> dict[str, Any]:
        """Look up the holder name of a bank account."""
        ...

    @abstractmethod
    async def list_banks(self, country: str | None = None) -> list[dict[str, Any]]:
        ...

    async def close(self) -> None:
        """Release network resources held by the adapter."""
        return None
