"""API tests for the finalize-order endpoint."""
import pytest

from apps.orders import adapters, providers
from apps.orders.errors import PackagingError

CHECKOUT_URL = "/create-checkout-session"
FINALIZE_URL = "/finalize-order"


def checkout(client):
    body = client.post(CHECKOUT_URL, data={"productId": "x"}, content_type="application/json").json()
    order = providers.get_order_store().get(body["orderId"])
    return order.id, order.payment_session_id


def test_finalize_completes_paid_order(client):
    order_id, session_id = checkout(client)

    r = client.get(FINALIZE_URL, {"session_id": session_id, "orderId": order_id})

    assert r.status_code == 200
    assert r.json() == {
        "ok": True,
        "orderId": order_id,
        "downloadUrl": f"http://testserver/downloads/bundle-{order_id}.pdf",
    }
    order = providers.get_order_store().get(order_id)
    assert order.status.value == "completed"
    assert order.email == "buyer@example.com"


def test_finalize_without_order_id_is_400(client):
    r = client.get(FINALIZE_URL, {"session_id": "cs_1"})
    assert r.status_code == 400
    assert r.json()["error"] == "MISSING_ORDER_ID"


def test_finalize_unknown_order_is_404(client):
    r = client.get(FINALIZE_URL, {"session_id": "cs_1", "orderId": "nope"})
    assert r.status_code == 404
    assert r.json()["error"] == "ORDER_NOT_FOUND"


def test_finalize_unpaid_session_is_402_payment_stage(client):
    order_id, session_id = checkout(client)
    providers._gateway_stub.set_paid(session_id, False)

    r = client.get(FINALIZE_URL, {"session_id": session_id, "orderId": order_id})

    assert r.status_code == 402
    assert r.json()["error"] == "PAYMENT_NOT_CONFIRMED"
    assert r.json()["stage"] == "payment"
    assert providers.get_order_store().get(order_id).status.value == "payment_failed"


def test_finalize_with_foreign_session_is_rejected(client):
    order_id, _ = checkout(client)
    _, other_session = checkout(client)

    r = client.get(FINALIZE_URL, {"session_id": other_session, "orderId": order_id})

    assert r.status_code == 402
    assert r.json()["error"] == "SESSION_MISMATCH"
    assert providers.get_order_store().get(order_id).status.value == "pending_payment"


def test_finalize_packaging_failure_is_500_packaging_stage(client, monkeypatch):
    def broken(self, order, content):
        raise PackagingError("disk full")

    monkeypatch.setattr(adapters.PackagerStub, "package", broken)
    order_id, session_id = checkout(client)

    r = client.get(FINALIZE_URL, {"session_id": session_id, "orderId": order_id})

    assert r.status_code == 500
    assert r.json()["error"] == "PACKAGING_FAILED"
    assert r.json()["stage"] == "packaging"
    order = providers.get_order_store().get(order_id)
    assert order.status.value == "generation_failed"
    assert order.download_path is None


def test_finalize_gateway_lookup_failure_is_402(client, monkeypatch):
    from apps.orders.errors import PaymentGatewayError

    def down(self, session_id):
        raise PaymentGatewayError("lookup failed")

    order_id, session_id = checkout(client)
    monkeypatch.setattr(adapters.PaymentGatewayStub, "verify_payment", down)

    r = client.get(FINALIZE_URL, {"session_id": session_id, "orderId": order_id})

    assert r.status_code == 402
    assert r.json()["error"] == "PAYMENT_GATEWAY_ERROR"
    assert r.json()["stage"] == "payment"


@pytest.mark.parametrize("with_session", [True, False])
def test_finalize_uses_stored_session(client, with_session):
    order_id, session_id = checkout(client)
    params = {"orderId": order_id}
    if with_session:
        params["session_id"] = session_id
    assert client.get(FINALIZE_URL, params).status_code == 200
