"""In-process order store and per-order locking.

``InMemoryOrderStore`` keeps orders in process memory. It is the default
store and the one used by the domain tests. ``KeyedLocks`` is shared with
the Django ORM store in ``repository.py`` to serialize finalize calls per
order id.
"""

import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from .domain import Order, OrderStore, apply_changes
from .errors import OrderNotFound


class KeyedLocks:
    """Registry of one lock per key, created on first use.

    Holding the lock for one key never blocks callers using another key.
    An entry lives only while some caller holds or waits for it, so the
    registry is bounded by the number of in-flight finalize calls.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, callers holding or waiting]
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class InMemoryOrderStore(OrderStore):
    """OrderStore backed by a dict guarded by a lock.

    Returned orders are copies, so callers only observe changes through
    ``get``/``update``.
    """

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._mutex = threading.RLock()
        self._locks = KeyedLocks()

    def create(self, product_id: str, email: Optional[str] = None) -> Order:
        order = Order(id=str(uuid.uuid4()), product_id=product_id, email=email or None)
        with self._mutex:
            self._orders[order.id] = order
        return replace(order)

    def get(self, order_id: str) -> Order:
        with self._mutex:
            return replace(self._find(order_id))

    def update(self, order_id: str, **changes) -> Order:
        with self._mutex:
            updated = apply_changes(self._find(order_id), changes)
            self._orders[order_id] = updated
            return replace(updated)

    def list_orders(self) -> List[Order]:
        with self._mutex:
            orders = [replace(o) for o in self._orders.values()]
        return sorted(orders, key=lambda o: o.created_at)

    def lock(self, order_id: str):
        return self._locks.hold(order_id)

    def _find(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id=order_id)
        return order
