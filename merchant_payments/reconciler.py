"""Payment state machine and reconciliation against the gateway.

Three sources can report a payment's outcome: the customer's return from
the hosted checkout (callback), the gateway's signed webhook, and an
explicit re-verification by the merchant. All three funnel through
``_transition``, which enforces the state machine and writes with a
compare-and-swap on the previously read status. When a callback and a
webhook race on the same payment, exactly one of them wins the write and
publishes; the other re-reads and returns the winner's state.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Any

import structlog

from merchant_payments.errors import GatewayError, InvalidSignature, NotFound, VerificationError
from merchant_payments.events import (
    PAYMENT_CANCELLED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_INITIATED,
    EventPublisher,
    build_event,
)
from merchant_payments.gateway.port import PaymentGateway, generate_reference
from merchant_payments.models import Payment, PaymentStatus, utcnow
from merchant_payments.store import PaymentMethodStore, PaymentStore

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
FAILURE_REASON_MAX_LENGTH = 500

GATEWAY_STATUS_MAP = {
    "success": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "abandoned": PaymentStatus.CANCELLED,
    "pending": PaymentStatus.PENDING,
}

ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}

TERMINAL_STATUSES = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})

# processed_at is stamped the first time a payment reaches one of these
PROCESSED_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})

TRANSITION_EVENTS = {
    PaymentStatus.COMPLETED: PAYMENT_COMPLETED,
    PaymentStatus.FAILED: PAYMENT_FAILED,
    PaymentStatus.CANCELLED: PAYMENT_CANCELLED,
}


def map_status(gateway_status: str | None) -> PaymentStatus:
    """Map a gateway status string to an internal status.

    Unknown values map to FAILED so an unrecognised report is never taken as success.
    """
    return GATEWAY_STATUS_MAP.get((gateway_status or "").strip().lower(), PaymentStatus.FAILED)


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


@dataclass
class InitiatedPayment:
    payment: Payment
    authorization_url: str
    access_code: str


@dataclass
class Page:
    items: list[Payment]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class PaymentReconciler:
    def __init__(
        self,
        payments: PaymentStore,
        payment_methods: PaymentMethodStore,
        gateway: PaymentGateway,
        publisher: EventPublisher,
        callback_url: str | None = None,
        publish_timeout: float = 5.0,
    ):
        self.payments = payments
        self.payment_methods = payment_methods
        self.gateway = gateway
        self.publisher = publisher
        self.callback_url = callback_url
        self.publish_timeout = publish_timeout

    # -- operations -----------------------------------------------------

    async def initiate(self, merchant_id: str, request) -> InitiatedPayment:
        method = self.payment_methods.find_active_by_id(request.payment_method_id, merchant_id)
        if method is None:
            raise NotFound("Payment method not found or inactive")

        payment = self.payments.create(Payment(
            payment_reference=generate_reference("PAY"),
            amount=request.amount,
            currency=request.currency,
            description=request.description,
            customer_email=request.customer_email,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            meta=request.metadata,
            status=PaymentStatus.PENDING.value,
            merchant_id=merchant_id,
            payment_method_id=method.id,
        ))
        log = logger.bind(reference=payment.payment_reference, merchant_id=merchant_id)
        log.info("payment_created", amount=str(payment.amount), currency=payment.currency)

        metadata = dict(request.metadata or {})
        metadata.update({
            "merchantId": merchant_id,
            "paymentId": payment.id,
            "customerName": request.customer_name,
            "customerPhone": request.customer_phone,
        })

        try:
            result = await self.gateway.initialize(
                email=request.customer_email,
                amount=payment.amount,
                currency=payment.currency,
                reference=payment.payment_reference,
                callback_url=request.callback_url or self.callback_url,
                metadata=metadata,
                channels=request.channels,
            )
        except Exception as e:
            # Any failure here must leave the record terminal, not pending
            detail = e.detail if isinstance(e, GatewayError) else str(e)
            log.error("payment_initialization_failed", error=detail)
            await self._transition(
                payment,
                PaymentStatus.FAILED,
                failure_reason=(detail or "Gateway initialization failed")[:FAILURE_REASON_MAX_LENGTH],
            )
            raise GatewayError("Failed to initialize payment with gateway", detail=detail) from e

        payment = self.payments.update_by_id(payment.id, gateway_response=result.raw) or payment
        log.info("payment_initiated")
        await self._publish(PAYMENT_INITIATED, payment)

        return InitiatedPayment(
            payment=payment,
            authorization_url=result.authorization_url,
            access_code=result.access_code,
        )

    async def confirm_callback(self, reference: str) -> Payment:
        payment = self.payments.find_by_reference(reference)
        if payment is None:
            raise NotFound("Payment not found")
        return await self._verify_and_apply(payment)

    async def force_verify(self, reference: str, merchant_id: str | None = None) -> Payment:
        payment = self.get_payment(reference, merchant_id)
        return await self._verify_and_apply(payment)

    async def confirm_webhook(
        self,
        raw_body: bytes,
        signature: str | None,
        source_ip: str | None = None,
    ) -> dict[str, Any]:
        """Apply an authenticated webhook.

        Unhandled event types and unknown references are logged no-ops; only
        authentication failures raise, and they do so before any write.
        """
        result = self.gateway.authenticate_webhook(raw_body, signature, source_ip)
        if not result.is_valid:
            raise InvalidSignature()

        event = result.event
        data = result.data if isinstance(result.data, dict) else {}
        reference = data.get("reference")
        outcome = {"event": event, "reference": reference, "handled": False}

        if event == "charge.success":
            new_status = PaymentStatus.COMPLETED
            fields = {"gateway_response": data}
        elif event == "charge.failed":
            new_status = PaymentStatus.FAILED
            reason = data.get("gateway_response") or "Payment failed"
            fields = {
                "gateway_response": data,
                "failure_reason": str(reason)[:FAILURE_REASON_MAX_LENGTH],
            }
        else:
            logger.info("webhook_event_unhandled", webhook_event=event, reference=reference)
            return outcome

        if data.get("id") is not None:
            fields["gateway_transaction_id"] = str(data["id"])

        payment = self.payments.find_by_reference(reference) if reference else None
        if payment is None:
            logger.warning("webhook_payment_not_found", webhook_event=event, reference=reference)
            return outcome

        updated, changed = await self._transition(payment, new_status, **fields)
        outcome.update({"handled": True, "status": updated.status, "changed": changed})
        return outcome

    def get_payment(self, reference: str, merchant_id: str | None = None) -> Payment:
        # Cross-merchant lookups look exactly like missing payments
        payment = self.payments.find_by_reference(reference, merchant_id)
        if payment is None:
            raise NotFound("Payment not found")
        return payment

    def list_payments(self, merchant_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Page:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, total = self.payments.find_page(merchant_id, page, limit)
        return Page(items=items, total=total, page=page, limit=limit)

    # -- internals ------------------------------------------------------

    async def _verify_and_apply(self, payment: Payment) -> Payment:
        try:
            verification = await self.gateway.verify(payment.payment_reference)
        except GatewayError as e:
            logger.error(
                "payment_verification_failed",
                reference=payment.payment_reference,
                error=e.detail,
            )
            raise VerificationError() from e

        new_status = map_status(verification.status)
        fields = {"gateway_response": verification.raw}
        if verification.gateway_transaction_id:
            fields["gateway_transaction_id"] = verification.gateway_transaction_id
        if new_status == PaymentStatus.FAILED:
            reason = verification.gateway_response or f"Gateway reported status '{verification.status}'"
            fields["failure_reason"] = str(reason)[:FAILURE_REASON_MAX_LENGTH]

        updated, _ = await self._transition(payment, new_status, **fields)
        return updated

    async def _transition(
        self,
        payment: Payment,
        new_status: PaymentStatus,
        **fields: Any,
    ) -> tuple[Payment, bool]:
        """Move ``payment`` to ``new_status`` if the state machine allows it.

        Returns the current row and whether this call performed the write.
        """
        current = PaymentStatus(payment.status)
        if new_status == current:
            return payment, False

        if not can_transition(current, new_status):
            logger.warning(
                "payment_transition_rejected",
                reference=payment.payment_reference,
                current=current.value,
                requested=new_status.value,
            )
            return payment, False

        values = dict(fields, status=new_status.value)
        if new_status in PROCESSED_STATUSES and payment.processed_at is None:
            values["processed_at"] = utcnow()

        if not self.payments.update_status_if(payment.id, current.value, **values):
            latest = self.payments.find_by_id(payment.id) or payment
            logger.info(
                "payment_transition_superseded",
                reference=payment.payment_reference,
                requested=new_status.value,
                actual=latest.status,
            )
            return latest, False

        updated = self.payments.find_by_id(payment.id) or payment
        logger.info(
            "payment_status_changed",
            reference=payment.payment_reference,
            previous=current.value,
            status=new_status.value,
        )

        event_type = TRANSITION_EVENTS.get(new_status)
        if event_type:
            await self._publish(event_type, updated)
        return updated, True

    async def _publish(self, event_type: str, payment: Payment) -> None:
        try:
            await asyncio.wait_for(
                self.publisher.publish(event_type, build_event(event_type, payment)),
                timeout=self.publish_timeout,
            )
        except Exception as e:
            logger.error(
                "event_publish_failed",
                event_type=event_type,
                reference=payment.payment_reference,
                error=str(e) or type(e).__name__,
            )
