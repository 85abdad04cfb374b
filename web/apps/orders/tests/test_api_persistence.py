"""Integration tests that run the checkout and finalize API on the ORM store.

These tests switch ``ORDER_STORE`` to ``db`` and assert the order rows
through low-level SQL so they do not depend on the repository mapping.
"""

import pytest
from django.db import connection

CHECKOUT_URL = "/create-checkout-session"
FINALIZE_URL = "/finalize-order"


@pytest.fixture
def db_store(settings, db):
    settings.ORDER_STORE = "db"


def _row(order_id):
    with connection.cursor() as cur:
        cur.execute(
            "select status, payment_session_id, download_path from orders where id = %s",
            [order_id.replace("-", "")],
        )
        return cur.fetchone()


def test_checkout_and_finalize_persist_order_row(client, db_store):
    r = client.post(CHECKOUT_URL, data={"productId": "x"}, content_type="application/json")
    assert r.status_code == 200
    order_id = r.json()["orderId"]

    status, session_id, download_path = _row(order_id)
    assert status == "pending_payment"
    assert session_id and r.json()["url"].endswith(session_id)
    assert download_path is None

    r = client.get(FINALIZE_URL, {"session_id": session_id, "orderId": order_id})
    assert r.status_code == 200
    assert _row(order_id) == ("completed", session_id, f"/downloads/bundle-{order_id}.pdf")


def test_admin_listing_reads_from_database(client, db_store):
    order_id = client.post(CHECKOUT_URL, data={}, content_type="application/json").json()["orderId"]
    body = client.get("/admin/orders").json()
    assert [o["id"] for o in body] == [order_id]


def test_unknown_order_on_db_store_is_404(client, db_store):
    r = client.get(FINALIZE_URL, {"orderId": "00000000-0000-0000-0000-000000000000"})
    assert r.status_code == 404
