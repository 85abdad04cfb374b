import os
import tempfile

import pytest

# repo.py binds its engine at import time
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/payments-test.sqlite3")


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    import main

    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def form():
    return {
        "mode": "payment",
        "payment_method_types[0]": "card",
        "line_items[0][price_data][currency]": "usd",
        "line_items[0][price_data][product_data][name]": "Ultimate Mega Bundle",
        "line_items[0][price_data][unit_amount]": "1999",
        "line_items[0][quantity]": "1",
        "success_url": "http://shop/success.html?session_id={CHECKOUT_SESSION_ID}&orderId=o-1",
        "cancel_url": "http://shop/",
        "client_reference_id": "o-1",
    }
