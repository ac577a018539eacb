from fastapi import APIRouter, Depends, Header, Query, Request, Response
from merchant_payments import config
from merchant_payments.auth import current_merchant_id
from merchant_payments.database import SessionLocal
from merchant_payments.errors import NotFound
from merchant_payments.events import get_publisher
from merchant_payments.gateway import get_gateway
from merchant_payments.models import PaymentMethod
from merchant_payments.reconciler import PaymentReconciler
from merchant_payments.schemas import (
    CallbackRequest,
    InitiatePaymentRequest,
    PaymentMethodCreate,
    PaymentMethodOut,
    PaymentMethodUpdate,
    PaymentOut,
)
from merchant_payments.store import PaymentMethodStore, PaymentStore

router = APIRouter()


def get_reconciler() -> PaymentReconciler:
    return PaymentReconciler(
        PaymentStore(SessionLocal),
        PaymentMethodStore(SessionLocal),
        get_gateway(),
        get_publisher(),
        callback_url=f"{config.app_url()}/payments/callback",
        publish_timeout=config.event_publish_timeout(),
    )


def get_payment_methods() -> PaymentMethodStore:
    return PaymentMethodStore(SessionLocal)


def _payment(payment) -> dict:
    return PaymentOut.model_validate(payment).model_dump(mode="json")


def _method(method) -> dict:
    return PaymentMethodOut.model_validate(method).model_dump(mode="json")


# -- payments -------------------------------------------------------------

@router.post("/payments/initiate", status_code=201)
async def initiate_payment(
    request: InitiatePaymentRequest,
    merchant_id: str = Depends(current_merchant_id),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    initiated = await reconciler.initiate(merchant_id, request)
    payment = initiated.payment
    return {
        "success": True,
        "data": {
            "payment_reference": payment.payment_reference,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "status": payment.status,
            "authorization_url": initiated.authorization_url,
            "access_code": initiated.access_code,
            "created_at": payment.created_at.isoformat(),
        },
        "message": "Payment initialized successfully. Redirect customer to authorization URL.",
    }


@router.post("/payments/callback")
async def payment_callback(
    request: CallbackRequest,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = await reconciler.confirm_callback(request.reference)
    return {
        "success": True,
        "data": {
            "payment_reference": payment.payment_reference,
            "status": payment.status,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "processed_at": payment.processed_at.isoformat() if payment.processed_at else None,
        },
        "message": "Payment processed successfully",
    }


def webhook_source_ip(request: Request) -> str:
    """Address the webhook came from, as seen by the nearest trusted hop.

    With PAYSTACK_WEBHOOK_IP_HEADER set, the last entry of that header is used:
    it is the one appended by our own proxy, earlier entries are client-supplied.
    """
    header = config.webhook_ip_header()
    if header:
        forwarded = request.headers.get(header, "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        return hops[-1] if hops else ""
    return request.client.host if request.client else ""


@router.post("/payments/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payload = await request.body()

    source_ip = None
    if config.webhook_ip_check_enabled():
        source_ip = webhook_source_ip(request)

    result = await reconciler.confirm_webhook(payload, x_paystack_signature, source_ip)
    return {"success": True, "data": result, "message": "Webhook processed successfully"}


@router.get("/payments")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    merchant_id: str = Depends(current_merchant_id),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    result = reconciler.list_payments(merchant_id, page, limit)
    return {
        "success": True,
        "data": [_payment(p) for p in result.items],
        "meta": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "total_pages": result.total_pages,
        },
        "message": "Payments retrieved successfully",
    }


@router.get("/payments/{reference}")
def get_payment(
    reference: str,
    merchant_id: str = Depends(current_merchant_id),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = reconciler.get_payment(reference, merchant_id)
    return {"success": True, "data": _payment(payment), "message": "Payment details retrieved successfully"}


@router.get("/payments/{reference}/verify")
async def verify_payment(
    reference: str,
    merchant_id: str = Depends(current_merchant_id),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = await reconciler.force_verify(reference, merchant_id)
    return {"success": True, "data": _payment(payment), "message": "Payment verification completed"}


# -- payment methods ------------------------------------------------------

@router.post("/payment-methods", status_code=201)
def create_payment_method(
    request: PaymentMethodCreate,
    merchant_id: str = Depends(current_merchant_id),
    methods: PaymentMethodStore = Depends(get_payment_methods),
):
    method = methods.create(PaymentMethod(
        merchant_id=merchant_id,
        type=request.type.value,
        provider_name=request.provider_name,
        last_four_digits=request.last_four_digits,
        expiry_month=request.expiry_month,
        expiry_year=request.expiry_year,
        holder_name=request.holder_name,
        meta=request.metadata,
    ))
    return {"success": True, "data": _method(method), "message": "Payment method created"}


@router.get("/payment-methods")
def list_payment_methods(
    merchant_id: str = Depends(current_merchant_id),
    methods: PaymentMethodStore = Depends(get_payment_methods),
):
    return {
        "success": True,
        "data": [_method(m) for m in methods.list_active(merchant_id)],
        "message": "Payment methods retrieved successfully",
    }


@router.get("/payment-methods/{method_id}")
def get_payment_method(
    method_id: str,
    merchant_id: str = Depends(current_merchant_id),
    methods: PaymentMethodStore = Depends(get_payment_methods),
):
    method = methods.find_by_id(method_id, merchant_id)
    if method is None:
        raise NotFound("Payment method not found")
    return {"success": True, "data": _method(method), "message": "Payment method retrieved successfully"}


@router.patch("/payment-methods/{method_id}")
def update_payment_method(
    method_id: str,
    request: PaymentMethodUpdate,
    merchant_id: str = Depends(current_merchant_id),
    methods: PaymentMethodStore = Depends(get_payment_methods),
):
    changes = request.model_dump(exclude_unset=True)
    if "metadata" in changes:
        changes["meta"] = changes.pop("metadata")
    method = methods.update(method_id, merchant_id, **changes)
    if method is None:
        raise NotFound("Payment method not found")
    return {"success": True, "data": _method(method), "message": "Payment method updated"}


@router.delete("/payment-methods/{method_id}", status_code=204)
def delete_payment_method(
    method_id: str,
    merchant_id: str = Depends(current_merchant_id),
    methods: PaymentMethodStore = Depends(get_payment_methods),
):
    # Soft delete: payments keep referencing the method
    if not methods.deactivate(method_id, merchant_id):
        raise NotFound("Payment method not found")
    return Response(status_code=204)


# -- banks ----------------------------------------------------------------

@router.get("/banks")
async def list_banks(
    country: str | None = None,
    merchant_id: str = Depends(current_merchant_id),
):
    banks = await get_gateway().list_banks(country)
    return {"success": True, "data": banks, "message": "Banks retrieved successfully"}


@router.get("/banks/resolve")
async def resolve_account(
    account_number: str = Query(..., min_length=10, max_length=10),
    bank_code: str = Query(..., min_length=1),
    merchant_id: str = Depends(current_merchant_id),
):
    account = await get_gateway().resolve_account(account_number, bank_code)
    return {"success": True, "data": account, "message": "Account resolved successfully"}
