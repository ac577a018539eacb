"""Configurable fake payment gateway for tests.

Simulates Paystack without any network calls. Behaviour is set at runtime
through ``configure()``; every call is recorded in ``calls`` so tests can
assert on what the reconciler sent. Webhook authentication is real HMAC,
so signed test payloads go through the same checks as production ones.
"""

from decimal import Decimal
from typing import Any
from uuid import uuid4

from merchant_payments.errors import GatewayError
from merchant_payments.gateway.port import (
    InitializeResult,
    PaymentGateway,
    VerifyResult,
    WebhookResult,
    to_minor_units,
)
from merchant_payments.gateway.webhook import WebhookAuthenticator


class FakeGateway(PaymentGateway):
    def __init__(self, webhook_secret: str) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.verify_status: str = "success"
        self.gateway_response: str = "Approved"
        self.calls: list[dict] = []
        self.webhook_authenticator = WebhookAuthenticator(webhook_secret)
        self._amounts: dict[str, Decimal] = {}
        self._currencies: dict[str, str] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Gateway unavailable",
        verify_status: str = "success",
        gateway_response: str = "Approved",
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.verify_status = verify_status
        self.gateway_response = gateway_response

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
        self.calls.append({
            "method": "initialize",
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
            "channels": channels,
        })
        if not self.should_succeed:
            raise GatewayError(detail=self.failure_reason)

        self._amounts[reference] = Decimal(str(amount))
        self._currencies[reference] = currency
        access_code = uuid4().hex[:15]
        return InitializeResult(
            authorization_url=f"https://checkout.example.test/{access_code}",
            access_code=access_code,
            reference=reference,
            raw={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": f"https://checkout.example.test/{access_code}",
                    "access_code": access_code,
                    "reference": reference,
                },
            },
        )

    async def verify(self, reference: str) -> VerifyResult:
        self.calls.append({"method": "verify", "reference": reference})
        if not self.should_succeed:
            raise GatewayError(detail=self.failure_reason)

        amount = self._amounts.get(reference, Decimal("0"))
        currency = self._currencies.get(reference, "NGN")
        transaction_id = f"fake_txn_{reference.lower()}"
        raw = {
            "id": transaction_id,
            "reference": reference,
            "status": self.verify_status,
            "amount": to_minor_units(amount),
            "currency": currency,
            "gateway_response": self.gateway_response,
        }
        return VerifyResult(
            status=self.verify_status,
            amount=amount,
            currency=currency,
            reference=reference,
            gateway_transaction_id=transaction_id,
            gateway_response=self.gateway_response,
            raw=raw,
        )

    def authenticate_webhook(
        self,
        raw_body: bytes,
        signature: str | None,
        source_ip: str | None = None,
    ) -> WebhookResult:
        return self.webhook_authenticator.authenticate(raw_body, signature, source_ip)

    def sign(self, raw_body: bytes) -> str:
        """Signature a real gateway would send for ``raw_body``."""
        return self.webhook_authenticator.compute_signature(raw_body)

    async def resolve_account(self, account_number: str, bank_code: str) -> dict[str, Any]:
        self.calls.append({
            "method": "resolve_account",
            "account_number": account_number,
            "bank_code": bank_code,
        })
        if not self.should_succeed:
            raise GatewayError(detail=self.failure_reason)
        return {"account_number": account_number, "account_name": "TEST ACCOUNT", "bank_id": 1}

    async def list_banks(self, country: str | None = None) -> list[dict[str, Any]]:
        self.calls.append({"method": "list_banks", "country": country})
        if not self.should_succeed:
            raise GatewayError(detail=self.failure_reason)
        return [{"name": "Test Bank", "code": "001", "country": country or "Nigeria"}]
