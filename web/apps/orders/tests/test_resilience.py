# web/apps/orders/tests/test_resilience.py
import httpx
import pytest

from apps.orders import http_adapters
from apps.orders.http_adapters import CircuitBreaker, HttpPaymentGatewayClient, _gateway_cb
from apps.orders.errors import PaymentGatewayError


@pytest.fixture(autouse=True)
def reset_breaker(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 1
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)
    _gateway_cb.on_success()
    yield
    _gateway_cb.on_success()


def test_gateway_retries_on_5xx(monkeypatch):
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            class R:
                status_code = 503
            return R()

        class R2:
            status_code = 200
            def json(self): return {"payment_status": "paid"}
        return R2()

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    result = HttpPaymentGatewayClient(base_url="http://x").verify_payment("cs_1")
    assert result.paid is True
    assert calls["n"] == 2


def test_retry_count_header_increments(monkeypatch):
    seen = []

    def fake_request(self, method, url, headers=None, **kwargs):
        seen.append(headers["X-Retry-Count"])
        class R:
            status_code = 502
        return R()

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    with pytest.raises(PaymentGatewayError):
        HttpPaymentGatewayClient(base_url="http://x").verify_payment("cs_1")
    assert seen == ["0", "1"]


def test_breaker_opens_after_threshold_and_half_opens_after_timeout(monkeypatch):
    now = {"t": 100.0}
    monkeypatch.setattr(http_adapters.time, "monotonic", lambda: now["t"])
    cb = CircuitBreaker("t", fail_threshold=2, reset_timeout=10.0)

    cb.on_failure()
    assert cb.state == "CLOSED"
    cb.on_failure()
    assert cb.state == "OPEN"
    with pytest.raises(RuntimeError):
        cb.before_call()

    now["t"] += 10.0
    assert cb.before_call() == "HALF_OPEN"
    # only one probe at a time
    with pytest.raises(RuntimeError):
        cb.before_call()

    cb.on_success()
    assert cb.state == "CLOSED"


def test_failed_half_open_probe_reopens(monkeypatch):
    now = {"t": 0.0}
    monkeypatch.setattr(http_adapters.time, "monotonic", lambda: now["t"])
    cb = CircuitBreaker("t", fail_threshold=1, reset_timeout=5.0)
    cb.on_failure()
    now["t"] += 5.0
    assert cb.before_call() == "HALF_OPEN"

    cb.on_failure()
    assert cb.state == "OPEN"


def test_open_gateway_circuit_is_a_gateway_error(monkeypatch):
    def boom(self, method, url, **kwargs):
        raise AssertionError("no request expected while the circuit is open")

    monkeypatch.setattr(httpx.Client, "request", boom, raising=True)
    for _ in range(_gateway_cb.fail_threshold):
        _gateway_cb.on_failure()

    with pytest.raises(PaymentGatewayError) as e:
        HttpPaymentGatewayClient(base_url="http://x").verify_payment("cs_1")
    assert "CIRCUIT_OPEN" in str(e.value)
