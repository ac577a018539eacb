"""Downstream notification of payment state changes.

Publishing is best-effort. The reconciler wraps every call, so publisher
implementations may raise freely; nothing here can fail a payment operation.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import aio_pika
from aio_pika.abc import AbstractExchange, AbstractRobustConnection
import structlog

from merchant_payments import config
from merchant_payments.models import Payment

logger = structlog.get_logger(__name__)

PAYMENT_INITIATED = "payment-initiated"
PAYMENT_COMPLETED = "payment-completed"
PAYMENT_FAILED = "payment-failed"
PAYMENT_CANCELLED = "payment-cancelled"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_event(event_type: str, payment: Payment) -> dict[str, Any]:
    """Serialise a payment into the event envelope consumers expect."""
    event = {
        "eventType": event_type,
        "paymentId": payment.id,
        "paymentReference": payment.payment_reference,
        "merchantId": payment.merchant_id,
        "amount": str(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "customerEmail": payment.customer_email,
        "customerName": payment.customer_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metadata": {
            "description": payment.description,
            "paymentMethodId": payment.payment_method_id,
        },
    }
    if event_type in (PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_CANCELLED):
        event["metadata"]["processedAt"] = _iso(payment.processed_at)
        event["metadata"]["gatewayTransactionId"] = payment.gateway_transaction_id
    if event_type == PAYMENT_FAILED:
        event["failureReason"] = payment.failure_reason
    return event


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        ...

    async def close(self) -> None:
        return None


class NullEventPublisher(EventPublisher):
    """Used when no broker is configured; events are logged and dropped."""

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.warning(
            "event_publisher_not_configured",
            event_type=event_type,
            payment_reference=payload.get("paymentReference"),
        )


class AmqpEventPublisher(EventPublisher):
    """Publishes JSON events to a durable RabbitMQ topic exchange.

    The routing key is the event type, e.g. ``payment-completed``. The
    connection is opened lazily and reused.
    """

    def __init__(self, url: str, exchange_name: str = "payment_exchange"):
        self.url = url
        self.exchange_name = exchange_name
        self._connection: AbstractRobustConnection | None = None
        self._exchange: AbstractExchange | None = None
        self._lock = asyncio.Lock()

    async def _get_exchange(self) -> AbstractExchange:
        # Serialise setup so concurrent first publishes share one connection
        async with self._lock:
            if self._exchange is None:
                connection = await aio_pika.connect_robust(self.url)
                try:
                    channel = await connection.channel()
                    exchange = await channel.declare_exchange(
                        self.exchange_name, aio_pika.ExchangeType.TOPIC, durable=True
                    )
                except BaseException:
                    # Includes cancellation by the caller's publish timeout
                    await connection.close()
                    raise
                self._connection = connection
                self._exchange = exchange
            return self._exchange

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        exchange = await self._get_exchange()
        message = aio_pika.Message(
            json.dumps(payload).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            headers={
                "event_type": event_type,
                "payment_reference": payload.get("paymentReference") or "",
                "merchant_id": payload.get("merchantId") or "",
            },
        )
        await exchange.publish(message, routing_key=event_type)
        logger.info(
            "event_published",
            event_type=event_type,
            payment_reference=payload.get("paymentReference"),
        )

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        self._exchange = None


def build_publisher() -> EventPublisher:
    url = config.rabbitmq_url()
    if not url:
        return NullEventPublisher()
    return AmqpEventPublisher(url, config.events_exchange())


_current_publisher: EventPublisher | None = None


def get_publisher() -> EventPublisher:
    global _current_publisher
    if _current_publisher is None:
        _current_publisher = build_publisher()
    return _current_publisher


def set_publisher(publisher: EventPublisher) -> None:
    """Override the active publisher (useful for tests)."""
    global _current_publisher
    _current_publisher = publisher


def reset_publisher() -> None:
    global _current_publisher
    _current_publisher = None
