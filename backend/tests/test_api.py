import pytest

from conftest import add_pending, sign, webhook_body
from paylink.errors import GatewayUnavailable
from paylink.models.transaction import PaymentTransaction

USER = {"X-User-Id": "7"}
CREATE_BODY = {
    "amount": 100000,
    "description": "Khóa học Toán 12 nâng cao",
    "returnUrl": "https://shop.example.vn/payment/success",
    "cancelUrl": "https://shop.example.vn/payment/cancel",
}


def post_webhook(client, body, signature=None):
    return client.post(
        "/api/payments/payos/webhook",
        content=body,
        headers={"x-signature": signature if signature is not None else sign(body), "content-type": "application/json"},
    )


class TestCreate:
    def test_create_returns_link_and_order_code(self, client, db):
        resp = client.post("/api/payments/payos/create", json=CREATE_BODY, headers=USER)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "Pending"
        assert data["paymentLinkUrl"].endswith(str(data["orderCode"]))
        assert data["qrCodeData"]
        record = db.query(PaymentTransaction).one()
        assert record.order_code == data["orderCode"]
        assert record.user_id == 7

    def test_requires_user_identity(self, client):
        resp = client.post("/api/payments/payos/create", json=CREATE_BODY)
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "override",
        [{"amount": 0}, {"amount": -1}, {"returnUrl": "nope"}, {"cancelUrl": ""}],
    )
    def test_invalid_request(self, client, db, override):
        resp = client.post("/api/payments/payos/create", json={**CREATE_BODY, **override}, headers=USER)

        assert resp.status_code == 400
        assert resp.json()["errorCode"] == "INVALID_REQUEST"
        assert db.query(PaymentTransaction).count() == 0

    def test_missing_field_is_invalid_request(self, client):
        body = {k: v for k, v in CREATE_BODY.items() if k != "returnUrl"}
        resp = client.post("/api/payments/payos/create", json=body, headers=USER)

        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_gateway_down_returns_503_and_no_row(self, client, gateway, db):
        gateway.fail_create = GatewayUnavailable()

        resp = client.post("/api/payments/payos/create", json=CREATE_BODY, headers=USER)

        assert resp.status_code == 503
        assert resp.json()["errorCode"] == "GATEWAY_UNAVAILABLE"
        assert db.query(PaymentTransaction).count() == 0


class TestWebhook:
    def test_paid_then_duplicate_get_same_ack(self, client, db):
        add_pending(db, 123)
        body = webhook_body(123)

        first = post_webhook(client, body)
        second = post_webhook(client, body)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json() == {"success": True}
        status = client.get("/api/payments/payos/status/123").json()
        assert status["status"] == "Paid"
        assert status["payload"] == body.decode()

    def test_bad_signature_is_400_without_detail(self, client, db):
        add_pending(db, 123)

        resp = post_webhook(client, webhook_body(123), signature="deadbeef")

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "errorCode": "SIGNATURE_INVALID", "message": "Invalid signature"}
        assert client.get("/api/payments/payos/status/123").json()["status"] == "Pending"

    def test_unknown_order_is_404(self, client, db):
        resp = post_webhook(client, webhook_body(999))

        assert resp.status_code == 404
        assert resp.json()["errorCode"] == "UNKNOWN_ORDER"
        assert db.query(PaymentTransaction).count() == 0


class TestStatusCancelReconcile:
    def test_status_of_unknown_order(self, client):
        resp = client.get("/api/payments/payos/status/999")
        assert resp.status_code == 404

    def test_status_fields(self, client, db):
        add_pending(db, 123)

        data = client.get("/api/payments/payos/status/123").json()

        assert data["orderCode"] == 123
        assert data["status"] == "Pending"
        assert data["amount"] == 100000
        assert data["currency"] == "VND"
        assert data["gateway"] == "payos"
        assert "createdAt" in data and "updatedAt" in data

    def test_cancel(self, client, db, gateway):
        add_pending(db, 123)

        resp = client.post("/api/payments/payos/123/cancel", json={"reason": "user request"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "Cancelled"
        assert gateway.cancelled == [(123, "user request")]

    def test_cancel_paid_is_conflict(self, client, db):
        add_pending(db, 123)
        body = webhook_body(123)
        post_webhook(client, body)

        resp = client.post("/api/payments/payos/123/cancel")

        assert resp.status_code == 409
        assert resp.json()["errorCode"] == "CONFLICTING_TERMINAL_STATE"

    def test_reconcile(self, client, db, gateway):
        add_pending(db, 123)
        gateway.set_status(123, "CANCELLED", amount=100000)

        resp = client.post("/api/payments/payos/reconcile/123")

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "orderCode": 123,
            "outcome": "applied",
            "status": "Cancelled",
            "gatewayStatus": "CANCELLED",
        }


class TestAdmin:
    def seed(self, db):
        add_pending(db, 1, user_id=1, original_description="Khóa học Toán")
        add_pending(db, 2, user_id=2, original_description="Đề thi Lý")
        add_pending(db, 3, user_id=1, original_description="Khóa học Hóa")
        db.query(PaymentTransaction).filter_by(order_code=2).update({"status": "Paid"})
        db.commit()

    def test_list_with_filters(self, client, db):
        self.seed(db)

        everything = client.get("/api/admin/payments").json()
        paid = client.get("/api/admin/payments", params={"status": "Paid"}).json()
        user_one = client.get("/api/admin/payments", params={"userId": 1}).json()
        searched = client.get("/api/admin/payments", params={"search": "Toán"}).json()
        paged = client.get("/api/admin/payments", params={"page": 2, "pageSize": 2}).json()

        assert everything["total"] == 3
        assert [i["orderCode"] for i in paid["items"]] == [2]
        assert {i["orderCode"] for i in user_one["items"]} == {1, 3}
        assert [i["orderCode"] for i in searched["items"]] == [1]
        assert paged["total"] == 3 and len(paged["items"]) == 1

    def test_unknown_status_filter(self, client):
        resp = client.get("/api/admin/payments", params={"status": "Refunded"})
        assert resp.status_code == 400

    def test_detail_includes_event_trail(self, client, db):
        add_pending(db, 123)
        body = webhook_body(123)
        post_webhook(client, body)
        post_webhook(client, body)

        data = client.get("/api/admin/payments/123").json()

        assert data["transaction"]["status"] == "Paid"
        assert [e["outcome"] for e in data["events"]] == ["applied", "duplicate"]
        verify = client.get("/api/admin/payments/123/events/verify").json()
        assert verify["valid"] is True
        assert verify["total_entries"] == 2

    def test_summary_counts_anomalies(self, client, db):
        add_pending(db, 1)
        add_pending(db, 2)
        mismatch = webhook_body(1, amount=5)
        post_webhook(client, mismatch)
        cancelled = webhook_body(2, status="CANCELLED")
        paid = webhook_body(2, status="PAID")
        post_webhook(client, cancelled)
        post_webhook(client, paid)

        data = client.get("/api/admin/payments/summary").json()

        assert data["total"] == 2
        assert data["byStatus"]["Failed"] == 1
        assert data["byStatus"]["Cancelled"] == 1
        assert data["byStatus"]["Pending"] == 0
        assert data["anomalies"] == 2

    def test_manual_sweep(self, client, db, gateway):
        from datetime import datetime, timedelta

        add_pending(db, 1, created_at=datetime.utcnow() - timedelta(days=1))
        gateway.set_status(1, "EXPIRED", amount=100000)

        resp = client.post("/api/admin/payments/reconcile")

        assert resp.status_code == 200
        assert resp.json() == {"checked": 1, "errors": 0, "outcomes": {"applied": 1}}
        assert client.get("/api/payments/payos/status/1").json()["status"] == "Expired"


def test_non_utf8_webhook_is_rejected_not_crashed(client, db):
    add_pending(db, 123)
    body = webhook_body(123).decode("utf-8").encode("utf-16")

    resp = post_webhook(client, body)

    assert resp.status_code == 400
    assert resp.json()["errorCode"] == "INVALID_REQUEST"
