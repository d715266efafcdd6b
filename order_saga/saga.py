from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from order_saga.errors import EmptyCart, OrderError, OrderPersistenceFailed
from order_saga.models import (
    CartLine,
    DeliveryDetails,
    EventKind,
    Order,
    OrderEvent,
    OrderLine,
    PaymentMethod,
)
from order_saga.notifications import NotificationSink, emit, get_sink
from order_saga.repository import OrderRepository
from order_saga.services import CartStore, InventoryLedger
from order_saga.store import Store


class SagaError(Exception):
    pass


class Step(ABC):
    """
    One saga step. `acquired` turns True as soon as execute() has changed
    shared state, and only acquired steps are compensated.
    """

    def __init__(self, store: Store, order_id: str):
        self.store = store
        self.order_id = order_id
        self.acquired = False

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def execute(self) -> None: ...

    @abstractmethod
    def compensate(self) -> None: ...

    def run(self) -> None:
        self.store.log(f"[order={self.order_id}] STEP {self.name()}")
        self.execute()
        self.acquired = True
        self.store.log(f"[order={self.order_id}] STEP {self.name()} OK")

    def run_compensation(self) -> None:
        self.store.log(f"[order={self.order_id}] COMPENSATE {self.name()}")
        self.compensate()
        self.store.log(f"[order={self.order_id}] COMPENSATE {self.name()} OK")


class ReserveInventory(Step):
    """Reserves one cart line and snapshots the product as it was at that moment."""

    def __init__(self, store: Store, order_id: str, product_id: str, qty: int):
        super().__init__(store, order_id)
        self.product_id = product_id
        self.qty = qty
        self.service = InventoryLedger(store)
        self.line: Optional[OrderLine] = None

    def name(self) -> str:
        return "ReserveInventory"

    def execute(self) -> None:
        with self.store.product_lock(self.product_id):
            self.service.reserve(self.product_id, self.qty, order_id=self.order_id)
            self.acquired = True
            product = self.store.get_product(self.product_id)
            self.line = OrderLine(
                product_id=product.product_id,
                name=product.name,
                unit_price=product.price,
                quantity=self.qty,
            )

    def compensate(self) -> None:
        self.service.release(self.product_id, self.qty, order_id=self.order_id)


class PersistOrder(Step):
    def __init__(
        self,
        store: Store,
        order_id: str,
        owner_id: str,
        reservations: List[ReserveInventory],
        delivery: DeliveryDetails,
        shipping_charge: Decimal,
        payment_method: PaymentMethod,
    ):
        super().__init__(store, order_id)
        self.owner_id = owner_id
        self.reservations = reservations
        self.delivery = delivery
        self.shipping_charge = shipping_charge
        self.payment_method = payment_method
        self.repository = OrderRepository(store)
        self.order: Optional[Order] = None

    def name(self) -> str:
        return "PersistOrder"

    def execute(self) -> None:
        order = Order.create(
            order_id=self.order_id,
            owner_id=self.owner_id,
            lines=[r.line for r in self.reservations],
            delivery=self.delivery,
            shipping_charge=self.shipping_charge,
            payment_method=self.payment_method,
        )
        self.store.log(
            f"[order={self.order_id}] amounts: subtotal={order.subtotal} "
            f"shipping={order.shipping_charge} total={order.total}"
        )
        self.order = self.repository.add(order)
        self.acquired = True

    def compensate(self) -> None:
        # Nobody has seen the order yet: the checkout never returned it
        self.repository.discard(self.order_id)


class ClearCart(Step):
    def __init__(self, store: Store, order_id: str, owner_id: str, lines: List[CartLine]):
        super().__init__(store, order_id)
        self.owner_id = owner_id
        self.lines = lines
        self.service = CartStore(store)

    def name(self) -> str:
        return "ClearCart"

    def execute(self) -> None:
        self.service.clear(self.owner_id)
        self.acquired = True

    def compensate(self) -> None:
        # Last step: only reached when the checkout is interrupted after the cart was emptied
        self.service.restore(self.owner_id, self.lines)


class CheckoutOrchestrator:
    """
    Turns a user's cart into an order, all or nothing.

    Steps: ReserveInventory per line (ascending product id) -> PersistOrder ->
    ClearCart. When a step fails, every step that already changed state is
    compensated in reverse.
    That includes interrupts and other BaseExceptions, so reserved stock can
    never leak.
    """

    def __init__(self, store: Store, sink: Optional[NotificationSink] = None):
        self.store = store
        self.carts = CartStore(store)
        self.sink = sink

    def checkout(
        self,
        owner_id: str,
        delivery: DeliveryDetails,
        payment_method: PaymentMethod,
        shipping_charge: Decimal = Decimal("0.00"),
        fail_at_step: Optional[str] = None,
    ) -> Order:
        order_id = uuid4().hex

        with self.store.cart_lock(owner_id):
            cart = self.carts.get(owner_id)
            self.store.log(
                f"[order={order_id}] SAGA START user={owner_id} lines={len(cart.lines)} "
                f"payment={payment_method.value}"
            )
            if cart.is_empty:
                self.store.log(f"[order={order_id}] SAGA FAILED: cart is empty")
                raise EmptyCart(owner_id)

            # get() hands out a copy, which ClearCart restores from
            lines = cart.lines

            reservations = [
                ReserveInventory(self.store, order_id, line.product_id, line.quantity)
                for line in sorted(lines, key=lambda line: line.product_id)
            ]
            persist = PersistOrder(
                self.store,
                order_id,
                owner_id,
                reservations,
                delivery,
                shipping_charge,
                payment_method,
            )
            steps: List[Step] = [*reservations, persist, ClearCart(self.store, order_id, owner_id, lines)]

            try:
                for step in steps:
                    if fail_at_step == step.name():
                        raise SagaError(f"Artificial failure at step {step.name()}")
                    step.run()
            except BaseException as e:
                self.store.log(f"[order={order_id}] SAGA FAILED: {e!r}")
                for step in reversed(steps):
                    if not step.acquired:
                        continue
                    try:
                        step.run_compensation()
                    except Exception as comp_exc:
                        self.store.log(f"[order={order_id}] COMPENSATION FAILED at {step.name()}: {comp_exc}")
                self.store.log(f"[order={order_id}] SAGA END (failed)")
                if isinstance(e, OrderError):
                    raise
                if isinstance(e, Exception):
                    raise OrderPersistenceFailed(order_id, str(e)) from e
                raise

            self.store.log(f"[order={order_id}] SAGA OK")

        order = persist.order
        emit(self.sink or get_sink(), OrderEvent.for_order(EventKind.CREATED, order))
        return order
