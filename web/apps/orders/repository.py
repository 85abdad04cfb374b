"""Repository layer for persisting orders.

``DjangoOrderStore`` implements the ``OrderStore`` port on top of the
Django ORM so a durable database can replace the in-memory store without
touching the domain service. It keeps the domain free of ORM types: every
method maps ``OrderModel`` rows to domain ``Order`` objects.
"""

from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction

from .domain import Order, OrderStatus, OrderStore, apply_changes
from .errors import OrderNotFound
from .models import OrderModel
from .store import KeyedLocks


def _to_domain(obj: OrderModel) -> Order:
    return Order(
        id=str(obj.id),
        product_id=obj.product_id,
        status=OrderStatus(obj.status),
        email=obj.email,
        payment_session_id=obj.payment_session_id,
        download_path=obj.download_path,
        failure_stage=obj.failure_stage,
        failure_reason=obj.failure_reason,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class DjangoOrderStore(OrderStore):
    """OrderStore that persists orders with the Django ORM.

    Updates run in a transaction with a row lock (``SELECT ... FOR
    UPDATE`` where the backend supports it). The finalize lock is
    process-wide; deployments running several worker processes against
    the same database still serialize per process only.
    """

    _locks = KeyedLocks()

    def create(self, product_id: str, email: Optional[str] = None) -> Order:
        obj = OrderModel.objects.create(product_id=product_id, email=email or None)
        return _to_domain(obj)

    def get(self, order_id: str) -> Order:
        return _to_domain(self._find(OrderModel.objects, order_id))

    @transaction.atomic
    def update(self, order_id: str, **changes) -> Order:
        obj = self._find(OrderModel.objects.select_for_update(), order_id)
        updated = apply_changes(_to_domain(obj), changes)

        obj.status = updated.status.value
        obj.email = updated.email
        obj.payment_session_id = updated.payment_session_id
        obj.download_path = updated.download_path
        obj.failure_stage = updated.failure_stage
        obj.failure_reason = updated.failure_reason
        obj.updated_at = updated.updated_at
        obj.save()
        return updated

    def list_orders(self) -> List[Order]:
        return [_to_domain(o) for o in OrderModel.objects.order_by("created_at")]

    def lock(self, order_id: str):
        return self._locks.hold(order_id)

    @staticmethod
    def _find(queryset, order_id: str) -> OrderModel:
        try:
            return queryset.get(id=order_id)
        except (OrderModel.DoesNotExist, ValidationError, ValueError):
            raise OrderNotFound(order_id=order_id)
