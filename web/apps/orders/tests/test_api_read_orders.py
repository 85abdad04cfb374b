import pytest

from apps.orders import providers

ADMIN_URL = "/admin/orders"


def test_admin_orders_empty(client):
    r = client.get(ADMIN_URL)
    assert r.status_code == 200
    assert r.json() == []


def test_admin_orders_lists_all_orders_oldest_first(client):
    ids = [
        client.post("/create-checkout-session", data={}, content_type="application/json").json()["orderId"]
        for _ in range(2)
    ]
    session_id = providers.get_order_store().get(ids[0]).payment_session_id
    client.get("/finalize-order", {"session_id": session_id, "orderId": ids[0]})

    r = client.get(ADMIN_URL)

    assert r.status_code == 200
    body = r.json()
    assert [o["id"] for o in body] == ids
    first, second = body
    assert first["status"] == "completed"
    assert first["downloadPath"] == f"/downloads/bundle-{ids[0]}.pdf"
    assert first["productId"] == "ultimate-mega-bundle"
    assert second["status"] == "pending_payment"
    assert "downloadPath" not in second
    assert {"id", "status", "productId", "paymentSessionId", "createdAt", "updatedAt"} <= set(second)


def test_admin_orders_is_read_only(client):
    r = client.post(ADMIN_URL, data={}, content_type="application/json")
    assert r.status_code == 405


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["ok"] is True


@pytest.mark.django_db
def test_healthz_checks_database_when_orders_live_there(client, settings):
    settings.ORDER_STORE = "db"
    body = client.get("/healthz").json()
    assert body["ok"] is True
    assert body["components"]["db"] == {"ok": True}
