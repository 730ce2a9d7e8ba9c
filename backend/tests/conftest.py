import json
import os

# Settings are read once; pin them before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYOS_CLIENT_ID"] = "test-client"
os.environ["PAYOS_API_KEY"] = "test-api-key"
os.environ["PAYOS_CHECKSUM_KEY"] = "test-checksum-key"
os.environ["CREATE_RATE_LIMIT"] = "1000"
os.environ["LOG_JSON"] = "false"
os.environ["POLL_INTERVAL_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paylink.database import get_db, get_session_factory, init_db
from paylink.dependencies import get_gateway, get_order_codes
from paylink.errors import LinkNotFound
from paylink.main import app
from paylink.services.gateway import GatewayClient, LinkInfo, StatusInfo
from paylink.services.ledger import TransactionLedger
from paylink.services.order_code import OrderCodeGenerator
from paylink.services.transition_service import TransitionService
from paylink.utils.hashing import hmac_sha256
from paylink.utils.rate_limiter import reset_rate_limits

CHECKSUM_KEY = "test-checksum-key"


class FakeGateway(GatewayClient):
    """In-memory gateway. Tests set statuses or failures per order code."""

    name = "payos"

    def __init__(self):
        self.created = []
        self.cancelled = []
        self.queried = []
        self.statuses = {}
        self.missing = set()
        self.fail_create = None
        self.fail_query = None
        self.fail_cancel = None

    def create_link(self, order_code, amount, description, cancel_url, return_url):
        if self.fail_create:
            raise self.fail_create
        self.created.append((order_code, amount, description))
        raw = json.dumps({"code": "00", "data": {"orderCode": order_code, "amount": amount, "status": "PENDING"}})
        return LinkInfo(
            order_code=order_code,
            amount=amount,
            description=description,
            checkout_url=f"https://pay.payos.vn/web/{order_code}",
            qr_code=f"00020101021238570010A000000727{order_code}",
            payment_link_id=f"link-{order_code}",
            raw=raw,
        )

    def set_status(self, order_code, status, amount, amount_paid=0):
        self.statuses[order_code] = StatusInfo(
            order_code=order_code,
            status=status,
            amount=amount,
            amount_paid=amount_paid,
            raw=json.dumps({"orderCode": order_code, "status": status, "amount": amount}),
        )

    def query_status(self, order_code):
        self.queried.append(order_code)
        if self.fail_query:
            raise self.fail_query
        if order_code in self.missing or order_code not in self.statuses:
            raise LinkNotFound()
        return self.statuses[order_code]

    def cancel_link(self, order_code, reason=None):
        if self.fail_cancel:
            raise self.fail_cancel
        self.cancelled.append((order_code, reason))
        return StatusInfo(
            order_code=order_code,
            status="CANCELLED",
            amount=0,
            raw=json.dumps({"orderCode": order_code, "status": "CANCELLED", "cancellationReason": reason}),
        )


def sign(body: bytes) -> str:
    return hmac_sha256(CHECKSUM_KEY, body)


def webhook_body(order_code, status="PAID", amount=100000, **extra) -> bytes:
    data = {"orderCode": order_code, "status": status, "amount": amount, **extra}
    return json.dumps({"code": "00", "desc": "success", "data": data}).encode("utf-8")


def add_pending(db, order_code, amount=100000, user_id=7, **fields):
    created_at = fields.pop("created_at", None)
    record = TransactionLedger.create_pending(
        db,
        order_code=order_code,
        user_id=user_id,
        amount=amount,
        currency="VND",
        gateway="payos",
        description=fields.pop("description", "Test order"),
        original_description=fields.pop("original_description", "Test order"),
        **fields,
    )
    if created_at is not None:
        record.created_at = created_at
    db.commit()
    return record


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def transitions():
    return TransitionService()


@pytest.fixture()
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_order_codes] = lambda: OrderCodeGenerator()
    reset_rate_limits()
    yield TestClient(app)
    app.dependency_overrides.clear()
