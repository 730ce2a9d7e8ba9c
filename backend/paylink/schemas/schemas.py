"""
Pydantic Schemas — Request & Response models for API validation.
Field names are camelCase on the wire.
"""
from datetime import datetime
from typing import Optional, Dict, List
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ──────────────── Payment links ────────────────

class CreatePaymentRequest(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in minor currency units (VND)")
    description: str = Field("", description="Free text; cut to 25 characters for the gateway")
    return_url: str = Field(..., description="Where the gateway sends the buyer after paying")
    cancel_url: str = Field(..., description="Where the gateway sends the buyer after cancelling")


class CreatePaymentResponse(CamelModel):
    success: bool = True
    order_code: int
    payment_link_url: str
    qr_code_data: str
    amount: int
    description: str
    status: str


class CancelPaymentRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=255)


class TransactionStatusResponse(CamelModel):
    order_code: int
    status: str
    amount: int
    currency: str
    gateway: str
    payload: Optional[str] = None
    anomaly: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None


class SettleResponse(CamelModel):
    success: bool = True
    order_code: int
    outcome: str
    status: str
    gateway_status: Optional[str] = None


# ──────────────── Webhook ────────────────

class WebhookAck(CamelModel):
    success: bool = True


# ──────────────── Admin ────────────────

class TransactionSummary(CamelModel):
    order_code: int
    user_id: int
    amount: int
    currency: str
    gateway: str
    status: str
    description: Optional[str] = None
    original_description: Optional[str] = None
    checkout_url: Optional[str] = None
    anomaly: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None


class TransactionListResponse(CamelModel):
    total: int
    page: int
    page_size: int
    items: List[TransactionSummary]


class PaymentEventEntry(CamelModel):
    id: int
    order_code: int
    source: str
    action: str
    outcome: str
    proposed_status: Optional[str] = None
    raw_payload: Optional[str] = None
    payload_hash: Optional[str] = None
    event_metadata: Optional[Dict] = None
    timestamp: datetime


class TransactionDetailResponse(CamelModel):
    transaction: TransactionSummary
    events: List[PaymentEventEntry]


class SweepResponse(CamelModel):
    checked: int
    errors: int
    outcomes: Dict[str, int]


class PaymentSummaryResponse(CamelModel):
    total: int
    by_status: Dict[str, int]
    anomalies: int


# ──────────────── Generic ────────────────

class ErrorResponse(CamelModel):
    success: bool = False
    error_code: str
    message: str
