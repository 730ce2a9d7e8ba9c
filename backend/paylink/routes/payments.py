"""
Payment Routes — PayOS payment links, status, webhook and reconciliation.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from paylink.config import get_settings
from paylink.database import get_db
from paylink.dependencies import (
    get_current_user_id, get_link_service, get_poller, get_webhook_ingestion,
)
from paylink.errors import UnknownOrder
from paylink.schemas.schemas import (
    CreatePaymentRequest, CreatePaymentResponse, CancelPaymentRequest,
    TransactionStatusResponse, SettleResponse, WebhookAck,
)
from paylink.services.ledger import TransactionLedger
from paylink.services.link_service import PaymentLinkService
from paylink.services.poller import ReconciliationPoller
from paylink.services.webhook_service import WebhookIngestion
from paylink.utils.rate_limiter import rate_limit

settings = get_settings()

router = APIRouter(prefix="/api/payments/payos", tags=["Payments"])


@router.post("/create", response_model=CreatePaymentResponse)
def create_payment(
    payload: CreatePaymentRequest,
    user_id: int = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_link_service),
    db: Session = Depends(get_db),
    _throttle: bool = Depends(rate_limit(requests=settings.CREATE_RATE_LIMIT, window=settings.CREATE_RATE_WINDOW)),
):
    """Create a hosted payment link and a Pending transaction."""
    created = service.create(
        db,
        user_id=user_id,
        amount=payload.amount,
        description=payload.description,
        return_url=payload.return_url,
        cancel_url=payload.cancel_url,
    )
    return CreatePaymentResponse(
        order_code=created.order_code,
        payment_link_url=created.payment_link_url,
        qr_code_data=created.qr_code_data,
        amount=created.amount,
        description=created.description,
        status=created.status,
    )


@router.get("/status/{order_code}", response_model=TransactionStatusResponse)
def get_status(order_code: int, db: Session = Depends(get_db)):
    """Current ledger status plus the latest raw gateway payload."""
    record = TransactionLedger.get(db, order_code)
    if not record:
        raise UnknownOrder(f"No transaction for order code {order_code}", order_code=order_code)
    return record


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    ingestion: WebhookIngestion = Depends(get_webhook_ingestion),
    db: Session = Depends(get_db),
):
    """Gateway callback. Duplicates are acknowledged exactly like first deliveries."""
    raw_body = await request.body()
    signature = request.headers.get(settings.WEBHOOK_SIGNATURE_HEADER)
    await run_in_threadpool(ingestion.handle, db, raw_body, signature)
    return WebhookAck()


@router.post("/{order_code}/cancel", response_model=SettleResponse)
def cancel_payment(
    order_code: int,
    payload: CancelPaymentRequest | None = None,
    service: PaymentLinkService = Depends(get_link_service),
    db: Session = Depends(get_db),
):
    """Cancel a link that is still Pending."""
    result = service.cancel(db, order_code, payload.reason if payload else None)
    return SettleResponse(order_code=order_code, outcome=result.outcome, status=result.status.value)


@router.post("/reconcile/{order_code}", response_model=SettleResponse)
def reconcile_payment(
    order_code: int,
    poller: ReconciliationPoller = Depends(get_poller),
    db: Session = Depends(get_db),
):
    """Ask the gateway for the live status of one order and settle it."""
    result = poller.reconcile(db, order_code)
    return SettleResponse(
        order_code=order_code,
        outcome=result.outcome,
        status=result.status.value,
        gateway_status=result.gateway_status,
    )
