from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional

from order_saga.errors import NotFound
from order_saga.models import Order, OrderStatus
from order_saga.store import Store

logger = logging.getLogger(__name__)


class DuplicateOrder(Exception):
    pass


class OrderRepository:
    """
    Order records. Records are frozen: updates store a replacement built with
    dataclasses.replace(), and only while holding store.order_lock(order_id).
    """

    _MUTABLE_FIELDS = frozenset({"status", "proof_of_payment_ref", "external_transaction_ref"})

    def __init__(self, store: Store):
        self.store = store

    def add(self, order: Order) -> Order:
        with self.store.order_lock(order.order_id):
            if order.order_id in self.store.orders:
                raise DuplicateOrder(f"Order {order.order_id} already exists")
            self.store.orders[order.order_id] = order
        self.store.log(f"[order={order.order_id}] order persisted status={order.status.value} total={order.total}")
        return order

    def discard(self, order_id: str) -> None:
        # Only for rolling back an add() whose checkout did not complete
        with self.store.order_lock(order_id):
            self.store.orders.pop(order_id, None)
        self.store.log(f"[order={order_id}] order write rolled back")

    def get(self, order_id: str) -> Order:
        order = self.store.orders.get(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    def update(self, order: Order, **changes) -> Order:
        illegal = set(changes) - self._MUTABLE_FIELDS
        if illegal:
            raise ValueError(f"Order fields are immutable: {sorted(illegal)}")
        with self.store.order_lock(order.order_id):
            current = self.get(order.order_id)
            if current is not order:
                raise RuntimeError(f"Order {order.order_id} changed since it was read")
            updated = dataclasses.replace(current, **changes)
            self.store.orders[order.order_id] = updated
            return updated

    def list_for_owner(self, owner_id: str) -> List[Order]:
        return self._newest_first(o for o in list(self.store.orders.values()) if o.owner_id == owner_id)

    def list_all(self, status: Optional[OrderStatus] = None) -> List[Order]:
        return self._newest_first(
            o for o in list(self.store.orders.values()) if status is None or o.status == status
        )

    @staticmethod
    def _newest_first(orders) -> List[Order]:
        # Orders arrive in insertion order; reversing first breaks created_at ties the same way
        return sorted(list(orders)[::-1], key=lambda o: o.created_at, reverse=True)
