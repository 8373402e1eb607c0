"""
Payment reconciliation tests.

Verifies:
- A successful callback completes payment and order exactly once
- Replays, unknown checkout ids and malformed bodies are acknowledged and ignored
- A failed callback cancels the order and releases its stock
- STK push initiation against a mocked Daraja API
"""

import json

import httpx
import pytest

from smart_retail.extensions import db
from smart_retail.models import Order, Payment
from smart_retail.services import payment_service
from smart_retail.services.mpesa_client import amount_in_shillings, stk_password

from conftest import create_order, set_stock, stock_of


MPESA_SETTINGS = {
    "MPESA_BASE_URL": "https://daraja.test",
    "MPESA_CONSUMER_KEY": "key",
    "MPESA_CONSUMER_SECRET": "secret",
    "MPESA_SHORTCODE": "174379",
    "MPESA_PASSKEY": "passkey",
    "MPESA_CALLBACK_URL": "https://shop.test/api/payments/mpesa/callback",
}


def callback_body(checkout_request_id, result_code=0, receipt="QK12ABC345"):
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0 else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {"Item": [
            {"Name": "Amount", "Value": 500},
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "PhoneNumber", "Value": 254712345678},
        ]}
    return {"Body": {"stkCallback": callback}}


@pytest.fixture
def pending_order(client, customer_headers, branch, product):
    """Order for 2 units with a checkout id already recorded on its payment."""
    set_stock(branch.id, product.id, 10)
    order_id = create_order(client, customer_headers, branch.id, product.id, quantity=2).json["order"]["id"]
    payment = db.session.query(Payment).filter_by(order_id=order_id).one()
    payment.checkout_request_id = "ws_CO_0001"
    db.session.commit()
    return order_id


def _order_and_payment(order_id):
    db.session.expire_all()
    order = db.session.get(Order, order_id)
    return order, order.payment


class TestCallback:

    def test_success_completes_payment_and_order(self, client, pending_order):
        resp = client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001"))

        assert resp.status_code == 200
        assert resp.json == {"ResultCode": 0, "ResultDesc": "Accepted"}
        order, payment = _order_and_payment(pending_order)
        assert payment.status == "completed"
        assert payment.transaction_id == "QK12ABC345"
        assert payment.result_code == 0
        assert json.loads(payment.gateway_response)["Body"]["stkCallback"]["CheckoutRequestID"] == "ws_CO_0001"
        assert order.payment_status == "completed"
        assert order.order_status == "completed"
        assert order.mpesa_receipt_number == "QK12ABC345"

    def test_replay_is_a_no_op(self, client, pending_order):
        client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001"))

        resp = client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001", receipt="OTHER"))

        assert resp.status_code == 200
        order, payment = _order_and_payment(pending_order)
        assert payment.transaction_id == "QK12ABC345"
        assert order.mpesa_receipt_number == "QK12ABC345"

    def test_failure_after_success_is_ignored(self, client, pending_order, branch, product):
        client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001"))

        client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001", result_code=1032))

        order, payment = _order_and_payment(pending_order)
        assert payment.status == "completed"
        assert order.order_status == "completed"
        assert stock_of(branch.id, product.id) == 8

    def test_failure_cancels_order_and_releases_stock(self, client, pending_order, branch, product):
        assert stock_of(branch.id, product.id) == 8

        resp = client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001", result_code=1032))

        assert resp.status_code == 200
        order, payment = _order_and_payment(pending_order)
        assert payment.status == "failed"
        assert payment.result_code == 1032
        assert order.payment_status == "failed"
        assert order.order_status == "cancelled"
        assert stock_of(branch.id, product.id) == 10

    def test_numeric_result_desc_still_fails_payment(self, client, pending_order, branch, product):
        body = callback_body("ws_CO_0001", result_code=1032)
        body["Body"]["stkCallback"]["ResultDesc"] = 1032

        resp = client.post("/api/payments/mpesa/callback", json=body)

        assert resp.status_code == 200
        order, payment = _order_and_payment(pending_order)
        assert payment.status == "failed"
        assert payment.result_desc == "1032"
        assert order.order_status == "cancelled"
        assert stock_of(branch.id, product.id) == 10

    def test_unknown_checkout_id_is_acknowledged(self, client, pending_order):
        resp = client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_UNKNOWN"))

        assert resp.status_code == 200
        assert resp.json["ResultCode"] == 0
        _, payment = _order_and_payment(pending_order)
        assert payment.status == "pending"

    @pytest.mark.parametrize("body", [
        {},
        {"Body": {}},
        {"Body": {"stkCallback": {"ResultCode": 0}}},
        {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_0001", "ResultCode": "abc"}}},
    ])
    def test_malformed_body_is_acknowledged(self, client, pending_order, body):
        resp = client.post("/api/payments/mpesa/callback", json=body)

        assert resp.status_code == 200
        _, payment = _order_and_payment(pending_order)
        assert payment.status == "pending"

    def test_process_callback_outcomes(self, pending_order):
        assert payment_service.process_callback(callback_body("nope")) == payment_service.OUTCOME_UNKNOWN
        assert payment_service.process_callback(None) == payment_service.OUTCOME_MALFORMED
        assert payment_service.process_callback(callback_body("ws_CO_0001")) == payment_service.OUTCOME_COMPLETED
        assert payment_service.process_callback(callback_body("ws_CO_0001")) == payment_service.OUTCOME_REPLAY

    def test_numeric_receipt_number(self):
        assert payment_service.receipt_number(1234567890.0) == "1234567890"
        assert payment_service.receipt_number(" QK1 ") == "QK1"
        assert payment_service.receipt_number(None) is None


class TestInitiate:

    @pytest.fixture
    def daraja(self, app, monkeypatch):
        """Configure M-Pesa against a mock transport; returns the captured requests."""
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            if request.url.path == "/oauth/v1/generate":
                return httpx.Response(200, json={"access_token": "token-123", "expires_in": "3599"})
            if request.url.path == "/mpesa/stkpush/v1/processrequest":
                return httpx.Response(200, json={
                    "MerchantRequestID": "29115-34620561-1",
                    "CheckoutRequestID": "ws_CO_NEW",
                    "ResponseCode": "0",
                    "ResponseDescription": "Success. Request accepted for processing",
                    "CustomerMessage": "Success. Request accepted for processing",
                })
            return httpx.Response(404)

        for key, value in MPESA_SETTINGS.items():
            monkeypatch.setitem(app.config, key, value)
        monkeypatch.setitem(app.config, "MPESA_TRANSPORT", httpx.MockTransport(handler))
        return captured

    def test_initiate_records_checkout_id(self, client, customer_headers, branch, product, daraja):
        set_stock(branch.id, product.id, 10)
        order_id = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]

        resp = client.post("/api/payments/mpesa/initiate", json={"order_id": order_id}, headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["checkout_request_id"] == "ws_CO_NEW"
        _, payment = _order_and_payment(order_id)
        assert payment.checkout_request_id == "ws_CO_NEW"
        assert payment.status == "pending"

        push = json.loads(daraja[1].content)
        assert daraja[1].headers["Authorization"] == "Bearer token-123"
        assert push["Amount"] == 500
        assert push["PhoneNumber"] == "254712345678"
        assert push["AccountReference"] == f"ORDER_{order_id}"
        assert push["Password"] == stk_password("174379", "passkey", push["Timestamp"])

    def test_gateway_rejection_is_502(self, app, client, customer_headers, branch, product, monkeypatch):
        for key, value in MPESA_SETTINGS.items():
            monkeypatch.setitem(app.config, key, value)
        monkeypatch.setitem(app.config, "MPESA_TRANSPORT", httpx.MockTransport(lambda request: httpx.Response(500)))
        set_stock(branch.id, product.id, 10)
        order_id = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]

        resp = client.post("/api/payments/mpesa/initiate", json={"order_id": order_id}, headers=customer_headers)

        assert resp.status_code == 502
        _, payment = _order_and_payment(order_id)
        assert payment.checkout_request_id is None

    def test_non_object_gateway_reply_is_502(self, app, client, customer_headers, branch, product, monkeypatch):
        for key, value in MPESA_SETTINGS.items():
            monkeypatch.setitem(app.config, key, value)
        monkeypatch.setitem(
            app.config,
            "MPESA_TRANSPORT",
            httpx.MockTransport(lambda request: httpx.Response(200, json=["not", "an", "object"])),
        )
        set_stock(branch.id, product.id, 10)
        order_id = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]

        resp = client.post("/api/payments/mpesa/initiate", json={"order_id": order_id}, headers=customer_headers)

        assert resp.status_code == 502
        assert resp.json["error"] == "Payment gateway returned an invalid response"
        _, payment = _order_and_payment(order_id)
        assert payment.checkout_request_id is None

    def test_missing_configuration_is_503(self, client, customer_headers, branch, product):
        set_stock(branch.id, product.id, 10)
        order_id = create_order(client, customer_headers, branch.id, product.id).json["order"]["id"]

        resp = client.post("/api/payments/mpesa/initiate", json={"order_id": order_id}, headers=customer_headers)

        assert resp.status_code == 503
        assert "MPESA_CONSUMER_KEY" in resp.json["details"]["missing"]

    def test_completed_payment_cannot_be_reinitiated(self, client, customer_headers, pending_order, daraja):
        client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001"))

        resp = client.post("/api/payments/mpesa/initiate", json={"order_id": pending_order}, headers=customer_headers)

        assert resp.status_code == 409
        assert daraja == []

    def test_status_endpoint(self, client, customer_headers, pending_order):
        client.post("/api/payments/mpesa/callback", json=callback_body("ws_CO_0001"))

        resp = client.get(f"/api/payments/{pending_order}/status", headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["payment_status"] == "completed"
        assert resp.json["mpesa_receipt_number"] == "QK12ABC345"


def test_amount_rounds_up_to_whole_shillings():
    assert amount_in_shillings(50000) == 500
    assert amount_in_shillings(50001) == 501
    assert amount_in_shillings(0) == 1
