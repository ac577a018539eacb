"""Error taxonomy shared by the reconciler, the gateway adapters and the HTTP layer.

Each error carries a stable ``kind`` and a caller-safe message. Anything
more detailed (raw gateway text, transport errors) goes to the log.
"""


class PaymentServiceError(Exception):
    kind = "internal_error"
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(PaymentServiceError):
    """Missing payment or payment method, including cross-merchant access."""

    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class GatewayError(PaymentServiceError):
    kind = "gateway_error"
    status_code = 502
    default_message = "Payment gateway request failed"

    def __init__(self, message: str | None = None, detail: str | None = None):
        super().__init__(message)
        # Internal only; never rendered to callers
        self.detail = detail or self.message


class InvalidSignature(PaymentServiceError):
    kind = "invalid_signature"
    status_code = 400
    default_message = "Invalid webhook signature or IP"


class VerificationError(PaymentServiceError):
    kind = "verification_error"
    status_code = 400
    default_message = "Payment verification failed"
