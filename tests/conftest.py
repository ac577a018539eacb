import os

# Must be set before merchant_payments.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ["PAYSTACK_WEBHOOK_IP_CHECK"] = "false"
os.environ.pop("RABBITMQ_URL", None)
os.environ.pop("PAYSTACK_WEBHOOK_IP_HEADER", None)

import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import merchant_payments.routes
from merchant_payments.auth import current_merchant_id
from merchant_payments.database import Base
from merchant_payments.events import EventPublisher, reset_publisher, set_publisher
from merchant_payments.gateway import reset_gateway, set_gateway
from merchant_payments.gateway.fake_adapter import FakeGateway
from merchant_payments.main import app as fastapi_app
from merchant_payments.models import Payment, PaymentMethod
from merchant_payments.reconciler import PaymentReconciler
from merchant_payments.store import PaymentMethodStore, PaymentStore

MERCHANT_ID = "merchant-1"
OTHER_MERCHANT_ID = "merchant-2"


class RecordingPublisher(EventPublisher):
    def __init__(self):
        self.events = []
        self.fail = False

    async def publish(self, event_type, payload):
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.events.append((event_type, payload))

    def types(self):
        return [event_type for event_type, _ in self.events]


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'payments.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def payment_store(session_factory):
    return PaymentStore(session_factory)


@pytest.fixture
def method_store(session_factory):
    return PaymentMethodStore(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway(webhook_secret="whsec_test")


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def payment_method(method_store):
    return method_store.create(PaymentMethod(
        merchant_id=MERCHANT_ID,
        type="debit_card",
        provider_name="VISA",
        last_four_digits="4242",
    ))


@pytest.fixture
def reconciler(payment_store, method_store, gateway, publisher):
    return PaymentReconciler(
        payment_store,
        method_store,
        gateway,
        publisher,
        callback_url="http://testserver/payments/callback",
        publish_timeout=1.0,
    )


@pytest.fixture
def make_payment(payment_store, payment_method):
    def _make(reference="PAY_1_TEST", status="pending", merchant_id=MERCHANT_ID, amount="100.00"):
        return payment_store.create(Payment(
            payment_reference=reference,
            amount=Decimal(amount),
            currency="NGN",
            status=status,
            customer_email="customer@example.com",
            customer_name="Ada Obi",
            merchant_id=merchant_id,
            payment_method_id=payment_method.id,
        ))
    return _make


@pytest.fixture
def signed_webhook(gateway):
    def _signed(event, data):
        body = json.dumps({"event": event, "data": data}).encode("utf-8")
        return body, gateway.sign(body)
    return _signed


@pytest.fixture
def client(monkeypatch, session_factory, gateway, publisher):
    # Point routes at the test database and fakes
    monkeypatch.setattr(merchant_payments.routes, "SessionLocal", session_factory)
    set_gateway(gateway)
    set_publisher(publisher)
    fastapi_app.dependency_overrides[current_merchant_id] = lambda: MERCHANT_ID
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()
    reset_gateway()
    reset_publisher()
