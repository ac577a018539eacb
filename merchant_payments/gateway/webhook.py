"""Paystack webhook authentication.

Paystack signs each webhook with ``HMAC-SHA512(secret, raw_body)`` and sends
the hex digest in the ``x-paystack-signature`` header. The digest must be
computed over the bytes exactly as received; re-serialising the parsed JSON
changes whitespace and key order and breaks the comparison.
"""

import hashlib
import hmac
import json

import structlog

from merchant_payments.gateway.port import WebhookResult

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"

_INVALID = WebhookResult(is_valid=False)


class WebhookAuthenticator:
    def __init__(self, secret: str, trusted_ips: list[str] | None = None):
        self.secret = secret
        self.trusted_ips = frozenset(trusted_ips or ())

    def compute_signature(self, raw_body: bytes) -> str:
        if not self.secret:
            raise ValueError("Webhook secret is not configured")
        return hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()

    def authenticate(
        self,
        raw_body: bytes,
        signature: str | None,
        source_ip: str | None = None,
    ) -> WebhookResult:
        """Return a valid result only for a signed body from an allowed address.

        Never raises: any internal failure is reported as ``is_valid=False``.
        """
        try:
            if source_ip is not None and source_ip not in self.trusted_ips:
                logger.warning("webhook_untrusted_ip", source_ip=source_ip)
                return _INVALID

            if not signature:
                logger.warning("webhook_signature_missing")
                return _INVALID

            expected = self.compute_signature(raw_body)
            if not hmac.compare_digest(expected, signature):
                logger.warning("webhook_signature_mismatch")
                return _INVALID

            payload = json.loads(raw_body)
            if not isinstance(payload, dict):
                logger.warning("webhook_payload_not_object")
                return _INVALID

            return WebhookResult(
                is_valid=True,
                event=str(payload.get("event") or ""),
                data=payload.get("data"),
            )
        except Exception as e:
            logger.error("webhook_authentication_error", error=str(e))
            return _INVALID
