import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings, tmp_path, monkeypatch):
    from apps.orders import providers
    from apps.orders.adapters import PaymentGatewayStub
    from apps.orders.store import InMemoryOrderStore

    settings.USE_HTTP_ADAPTERS = False
    settings.ORDER_STORE = "memory"
    settings.DOWNLOADS_DIR = str(tmp_path / "downloads")
    settings.PUBLIC_BASE_URL = "http://testserver"
    # fresh process-wide singletons per test
    monkeypatch.setattr(providers, "_memory_store", InMemoryOrderStore())
    monkeypatch.setattr(providers, "_gateway_stub", PaymentGatewayStub())


@pytest.fixture(autouse=True)
def reset_throttle_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
