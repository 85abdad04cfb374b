"""Tests for the OrderStore implementations and the shared state machine."""

import pytest

from apps.orders.domain import OrderStatus
from apps.orders.errors import InvalidTransition, OrderNotFound
from apps.orders.repository import DjangoOrderStore
from apps.orders.store import InMemoryOrderStore


@pytest.fixture(params=["memory", "db"])
def store(request):
    if request.param == "db":
        request.getfixturevalue("db")
        return DjangoOrderStore()
    return InMemoryOrderStore()


def test_create_returns_pending_order(store):
    order = store.create("ultimate-mega-bundle", email="a@b.co")
    assert order.status == OrderStatus.PENDING_PAYMENT
    assert order.email == "a@b.co"
    assert order.payment_session_id is None
    assert order.download_path is None
    assert store.get(order.id).id == order.id


def test_get_unknown_raises_order_not_found(store):
    with pytest.raises(OrderNotFound):
        store.get("00000000-0000-0000-0000-000000000000")
    with pytest.raises(OrderNotFound):
        store.get("not-a-uuid")


def test_update_unknown_raises_order_not_found(store):
    with pytest.raises(OrderNotFound):
        store.update("00000000-0000-0000-0000-000000000000", status=OrderStatus.PAID)


def test_full_lifecycle(store):
    order = store.create("p")
    store.update(order.id, payment_session_id="cs_1")
    store.update(order.id, status=OrderStatus.PAID)
    done = store.update(order.id, status=OrderStatus.COMPLETED, download_path="/downloads/x.pdf")

    assert done.status == OrderStatus.COMPLETED
    reloaded = store.get(order.id)
    assert reloaded.download_path == "/downloads/x.pdf"
    assert reloaded.payment_session_id == "cs_1"
    assert reloaded.updated_at >= reloaded.created_at


@pytest.mark.parametrize(
    "path, target",
    [
        ([], OrderStatus.COMPLETED),
        ([], OrderStatus.GENERATION_FAILED),
        ([OrderStatus.PAID], OrderStatus.PAYMENT_FAILED),
        ([OrderStatus.PAYMENT_FAILED], OrderStatus.GENERATION_FAILED),
    ],
)
def test_illegal_transitions_are_rejected(store, path, target):
    order = store.create("p")
    for status in path:
        store.update(order.id, status=status)
    with pytest.raises(InvalidTransition):
        store.update(order.id, status=target)


def test_completed_requires_download_path_and_vice_versa(store):
    order = store.create("p")
    store.update(order.id, status=OrderStatus.PAID)
    with pytest.raises(InvalidTransition):
        store.update(order.id, status=OrderStatus.COMPLETED)
    with pytest.raises(InvalidTransition):
        store.update(order.id, download_path="/downloads/x.pdf")
    assert store.get(order.id).status == OrderStatus.PAID


def test_completed_is_terminal(store):
    order = store.create("p")
    store.update(order.id, status=OrderStatus.PAID)
    store.update(order.id, status=OrderStatus.COMPLETED, download_path="/downloads/x.pdf")
    with pytest.raises(InvalidTransition):
        store.update(order.id, status=OrderStatus.PAID)


def test_write_once_fields(store):
    order = store.create("p", email="first@example.com")
    store.update(order.id, payment_session_id="cs_1")
    with pytest.raises(InvalidTransition):
        store.update(order.id, payment_session_id="cs_2")
    with pytest.raises(InvalidTransition):
        store.update(order.id, email="second@example.com")
    with pytest.raises(InvalidTransition):
        store.update(order.id, created_at=None)


def test_list_orders_is_ordered_by_creation(store):
    ids = [store.create("p").id for _ in range(3)]
    assert [o.id for o in store.list_orders()] == ids


def test_memory_store_returns_copies():
    store = InMemoryOrderStore()
    order = store.create("p")
    order.status = OrderStatus.COMPLETED
    assert store.get(order.id).status == OrderStatus.PENDING_PAYMENT
