"""Paystack gateway adapter over the Paystack REST API.

Paystack wraps every response in ``{"status": bool, "message": str, "data": ...}``
and expresses amounts in the currency's minor unit (kobo, pesewas, cents).
This adapter converts at the boundary so the rest of the service only ever
sees major units.
"""

from decimal import Decimal
from typing import Any

import httpx
import structlog

from merchant_payments.errors import GatewayError
from merchant_payments.gateway.port import (
    InitializeResult,
    PaymentGateway,
    VerifyResult,
    WebhookResult,
    to_major_units,
    to_minor_units,
)
from merchant_payments.gateway.webhook import WebhookAuthenticator

logger = structlog.get_logger(__name__)

DEFAULT_CHANNELS = ["card", "bank", "ussd", "qr", "mobile_money", "bank_transfer"]


class PaystackGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        webhook_authenticator: WebhookAuthenticator,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not secret_key:
            logger.error("paystack_credentials_missing")
        self.secret_key = secret_key
        self.webhook_authenticator = webhook_authenticator
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        if not self.secret_key:
            raise GatewayError(detail="Paystack secret key is not configured")

        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("paystack_timeout", method=method, path=path)
            raise GatewayError(detail=f"Timeout calling Paystack: {e}") from e
        except httpx.HTTPError as e:
            logger.error("paystack_transport_error", method=method, path=path, error=str(e))
            raise GatewayError(detail=f"Transport error calling Paystack: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error("paystack_invalid_json", path=path, status_code=response.status_code)
            raise GatewayError(detail="Invalid JSON response from Paystack") from e

        if not response.is_success or not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(
                "paystack_request_rejected",
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise GatewayError(detail=message or f"Paystack returned HTTP {response.status_code}")

        return body

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
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata or {},
            "channels": channels or DEFAULT_CHANNELS,
        }
        body = await self._request("POST", "/transaction/initialize", json=payload)
        data = body.get("data") or {}

        logger.info("paystack_transaction_initialized", reference=reference)
        return InitializeResult(
            authorization_url=data.get("authorization_url", ""),
            access_code=data.get("access_code", ""),
            reference=data.get("reference", reference),
            raw=body,
        )

    async def verify(self, reference: str) -> VerifyResult:
        body = await self._request("GET", f"/transaction/verify/{reference}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayError(detail="Paystack verify response has no data")

        transaction_id = data.get("id")
        return VerifyResult(
            status=str(data.get("status") or ""),
            amount=to_major_units(data.get("amount") or 0),
            currency=data.get("currency") or "",
            reference=data.get("reference") or reference,
            gateway_transaction_id=str(transaction_id) if transaction_id is not None else None,
            gateway_response=data.get("gateway_response"),
            paid_at=data.get("paid_at"),
            raw=data,
        )

    def authenticate_webhook(
        self,
        raw_body: bytes,
        signature: str | None,
        source_ip: str | None = None,
    ) -> WebhookResult:
        return self.webhook_authenticator.authenticate(raw_body, signature, source_ip)

    async def resolve_account(self, account_number: str, bank_code: str) -> dict[str, Any]:
        body = await self._request(
            "GET",
            "/bank/resolve",
            params={"account_number": account_number, "bank_code": bank_code},
        )
        return body.get("data") or {}

    async def list_banks(self, country: str | None = None) -> list[dict[str, Any]]:
        params = {"country": country} if country else None
        body = await self._request("GET", "/bank", params=params)
        return body.get("data") or []

    async def close(self) -> None:
        await self.client.aclose()
