"""Payment gateway factory.

get_gateway() returns the Paystack adapter built from config; set_gateway()
swaps in another implementation (tests install FakeGateway this way).

A missing PAYSTACK_SECRET_KEY still yields a PaystackGateway: every API call
raises GatewayError and every webhook fails authentication, so nothing
can be marked paid until the key is configured.
"""

import structlog

from merchant_payments import config
from merchant_payments.gateway.paystack import PaystackGateway
from merchant_payments.gateway.port import PaymentGateway
from merchant_payments.gateway.webhook import WebhookAuthenticator

logger = structlog.get_logger(__name__)

_current_gateway: PaymentGateway | None = None


def build_gateway() -> PaymentGateway:
    secret_key = config.paystack_secret_key()
    webhook_secret = config.paystack_webhook_secret()
    if not webhook_secret:
        logger.error("paystack_webhook_secret_missing")
    authenticator = WebhookAuthenticator(
        webhook_secret,
        trusted_ips=config.paystack_trusted_ips(),
    )
    return PaystackGateway(
        secret_key,
        authenticator,
        base_url=config.paystack_base_url(),
        timeout=config.paystack_timeout(),
    )


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
