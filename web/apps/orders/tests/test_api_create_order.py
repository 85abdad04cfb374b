"""API tests for the create-checkout-session endpoint.

These tests exercise the checkout API for the main scenarios: successful
session creation, gateway failure and payload validation errors. They
rely on in-process stubs from ``apps.orders.adapters`` for deterministic
behavior.
"""
import pytest

from apps.orders import adapters, providers
from apps.orders.errors import PaymentGatewayError

CHECKOUT_URL = "/create-checkout-session"


def test_checkout_returns_redirect_url_and_pending_order(client):
    r = client.post(CHECKOUT_URL, data={"productId": "x"}, content_type="application/json")
    assert r.status_code == 200
    body = r.json()
    assert body["url"].startswith("https://pay.example/session/cs_test_")

    order = providers.get_order_store().get(body["orderId"])
    assert order.status.value == "pending_payment"
    assert body["url"].endswith(order.payment_session_id)


def test_checkout_accepts_empty_body(client):
    r = client.post(CHECKOUT_URL, content_type="application/json")
    assert r.status_code == 200
    assert r.json()["url"]


def test_checkout_stores_normalized_buyer_email(client):
    r = client.post(CHECKOUT_URL, data={"buyerEmail": " Buyer@Example.com "}, content_type="application/json")
    assert r.status_code == 200
    assert providers.get_order_store().get(r.json()["orderId"]).email == "buyer@example.com"


def test_checkout_gateway_error_returns_503_and_fails_order(client, monkeypatch):
    def down(self, *a, **kw):
        raise PaymentGatewayError("gateway down")

    monkeypatch.setattr(adapters.PaymentGatewayStub, "create_session", down)
    r = client.post(CHECKOUT_URL, data={}, content_type="application/json")

    assert r.status_code == 503
    body = r.json()
    assert body["error"] == "PAYMENT_GATEWAY_ERROR"
    assert body["stage"] == "payment"
    order = providers.get_order_store().get(body["orderId"])
    assert order.status.value == "payment_failed"


@pytest.mark.parametrize(
    "payload",
    [
        {"buyerEmail": "not-an-email"},
        {"productId": "bad id!"},
        ["productId", "x"],
    ],
)
def test_checkout_validation_error(client, payload):
    r = client.post(CHECKOUT_URL, data=payload, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"
    assert providers.get_order_store().list_orders() == []


def test_checkout_rejects_oversized_body(client):
    r = client.post(CHECKOUT_URL, data={"productId": "x" * (70 * 1024)}, content_type="application/json")
    assert r.status_code == 413


def test_responses_carry_request_id(client):
    r = client.post(CHECKOUT_URL, data={}, content_type="application/json", HTTP_X_REQUEST_ID="rid-42")
    assert r["X-Request-ID"] == "rid-42"
