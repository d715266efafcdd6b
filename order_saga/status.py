"""Order status machine.

    AwaitingPayment -> Processing -> Shipped -> Delivered
    AwaitingPayment | Processing -> Cancelled

AwaitingPayment is the initial state of prepaid orders and only the payment
confirmation handler moves it to Processing. Delivered and Cancelled are
terminal. Entering Cancelled returns every line's quantity to stock.
Asking for the state an order is already in succeeds without doing anything,
so retried requests are harmless.
"""

from __future__ import annotations

from typing import Optional, Tuple

from order_saga.errors import IllegalStatusTransition, NotAuthorized
from order_saga.models import EventKind, Identity, Order, OrderEvent, OrderStatus
from order_saga.notifications import NotificationSink, emit, get_sink
from order_saga.repository import OrderRepository
from order_saga.services import InventoryLedger
from order_saga.store import Store

_VALID_TRANSITIONS = {
    OrderStatus.AWAITING_PAYMENT: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Fulfillment moves an administrator may request through set_status
_ADMIN_TRANSITIONS = {
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


class OrderStatusMachine:
    def __init__(self, store: Store, sink: Optional[NotificationSink] = None):
        self.store = store
        self.orders = OrderRepository(store)
        self.ledger = InventoryLedger(store)
        self.sink = sink

    def cancel(self, order_id: str, identity: Identity) -> Order:
        """Cancel on behalf of the owner, or of any administrator."""
        with self.store.order_lock(order_id):
            order = self.orders.get(order_id)
            if not identity.is_admin and order.owner_id != identity.user_id:
                raise NotAuthorized(identity.user_id, f"cancel order {order_id}")
            order, changed = self.apply(order, OrderStatus.CANCELLED)
        if changed:
            self.notify(order)
        return order

    def set_status(self, order_id: str, target: OrderStatus, identity: Identity) -> Order:
        if not identity.is_admin:
            raise NotAuthorized(identity.user_id, f"change the status of order {order_id}")
        with self.store.order_lock(order_id):
            order = self.orders.get(order_id)
            if (
                order.status != target
                and target != OrderStatus.CANCELLED
                and (order.status, target) not in _ADMIN_TRANSITIONS
            ):
                raise IllegalStatusTransition(order_id, order.status, target)
            order, changed = self.apply(order, target)
        if changed:
            self.notify(order)
        return order

    def apply(self, order: Order, target: OrderStatus, **changes) -> Tuple[Order, bool]:
        """Move `order` to `target`. Caller must hold order_lock(order.order_id).

        Returns the stored order and whether anything changed. Notifying is
        left to the caller, once the lock is released.
        """
        if order.status == target:
            return order, False
        if not can_transition(order.status, target):
            raise IllegalStatusTransition(order.order_id, order.status, target)

        previous = order.status
        updated = self.orders.update(order, status=target, **changes)
        self.store.log(f"[order={order.order_id}] status {previous.value} -> {target.value}")

        if target == OrderStatus.CANCELLED:
            for line in updated.lines:
                self.ledger.release(line.product_id, line.quantity, order_id=order.order_id)
        return updated, True

    def notify(self, order: Order) -> None:
        kind = EventKind.CANCELLED if order.status == OrderStatus.CANCELLED else EventKind.STATUS_CHANGED
        emit(self.sink or get_sink(), OrderEvent.for_order(kind, order))
