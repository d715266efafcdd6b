"""Tests for checkout saga orchestration."""
import logging
import threading
from decimal import Decimal

import pytest

from order_saga.errors import EmptyCart, InsufficientStock, OrderPersistenceFailed
from order_saga.models import EventKind, OrderStatus, PaymentMethod
from order_saga.repository import OrderRepository
from order_saga.saga import CheckoutOrchestrator
from order_saga.services import CartStore
from order_saga.store import Store

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _last_saga_logs(store) -> list[str]:
    start = max(i for i, line in enumerate(store.logs) if "SAGA START" in line)
    order_id = store.logs[start].split("]")[0].split("=")[1]
    return [line for line in store.logs if f"[order={order_id}]" in line]


def _cart(store, owner_id):
    return [(l.product_id, l.quantity) for l in CartStore(store).get(owner_id).lines]


def test_cash_on_delivery_checkout(shop, store, sink, alice, checkout_body):
    """Cart of 2 x A (price 100, stock 2) becomes a Processing order."""
    logging.info("\n=== TEST: Cash on delivery checkout ===")

    shop.add_to_cart(alice, {"product_id": "A", "quantity": 2})
    order = shop.checkout(alice, checkout_body)

    assert order.status == OrderStatus.PROCESSING
    assert order.payment_method == PaymentMethod.CASH_ON_DELIVERY
    assert order.subtotal == Decimal("200.00")
    assert order.shipping_charge == Decimal("40.00")
    assert order.total == Decimal("240.00")
    assert [(l.product_id, l.name, l.unit_price, l.quantity) for l in order.lines] == [
        ("A", "Filter coffee 500g", Decimal("100.00"), 2)
    ]

    assert store.products["A"].stock == 0
    assert _cart(store, "alice") == []
    assert store.orders[order.order_id] is order

    logs = _last_saga_logs(store)
    assert any("STEP ReserveInventory OK" in l for l in logs)
    assert any("STEP PersistOrder OK" in l for l in logs)
    assert any("STEP ClearCart OK" in l for l in logs)
    assert any("SAGA OK" in l for l in logs)

    assert [(e.kind, e.order_id, e.status) for e in sink.events] == [
        (EventKind.CREATED, order.order_id, OrderStatus.PROCESSING)
    ]
    logging.info("✓ Order created, stock reserved, cart cleared")


def test_prepaid_checkout_awaits_payment(shop, store, alice, prepaid_body):
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 1})

    order = shop.checkout(alice, prepaid_body)

    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.proof_of_payment_ref is None
    assert store.products["B"].stock == 4


def test_fail_on_insufficient_stock(shop, store, sink, alice, checkout_body):
    """Same cart as above but only one unit in stock."""
    logging.info("\n=== TEST: Fail on insufficient stock ===")
    store.products["A"].stock = 1
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 2})

    with pytest.raises(InsufficientStock) as exc_info:
        shop.checkout(alice, checkout_body)

    assert exc_info.value.product_id == "A"
    assert store.products["A"].stock == 1
    assert _cart(store, "alice") == [("A", 2)]
    assert store.orders == {}
    assert sink.events == []

    logs = _last_saga_logs(store)
    assert any("SAGA FAILED" in l for l in logs)
    assert any("COMPENSATE" in l for l in logs) is False
    logging.info("✓ Nothing reserved, cart untouched")


def test_failed_reservation_releases_earlier_ones(shop, store, alice, checkout_body):
    """All-or-nothing: A and B are reserved, C fails, A and B come back."""
    logging.info("\n=== TEST: Partial reservations are rolled back ===")
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 20})
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 2})
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 2})

    with pytest.raises(InsufficientStock) as exc_info:
        shop.checkout(alice, checkout_body)

    assert exc_info.value.product_id == "C"
    assert store.products["A"].stock == 2
    assert store.products["B"].stock == 5
    assert store.products["C"].stock == 10
    assert _cart(store, "alice") == [("C", 20), ("A", 2), ("B", 2)]

    logs = _last_saga_logs(store)
    assert sum("COMPENSATE ReserveInventory OK" in l for l in logs) == 2
    assert any("SAGA END (failed)" in l for l in logs)
    logging.info("✓ Earlier reservations compensated")


def test_reservations_follow_product_id_order(shop, store, alice, checkout_body):
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 1})
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 1})
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 1})

    order = shop.checkout(alice, checkout_body)

    reserved = [l for l in _last_saga_logs(store) if "inventory reserved" in l]
    assert [l.split("reserved: ")[1][0] for l in reserved] == ["A", "B", "C"]
    assert [l.product_id for l in order.lines] == ["A", "B", "C"]
    assert order.subtotal == Decimal("400.00")


def test_empty_cart_is_rejected(shop, store, alice, checkout_body):
    with pytest.raises(EmptyCart):
        shop.checkout(alice, checkout_body)

    assert store.orders == {}


def test_persistence_failure_releases_stock_and_keeps_cart(shop, store, sink, alice, checkout_body, monkeypatch):
    logging.info("\n=== TEST: Persistence failure after reservation ===")

    def broken_add(self, order):
        raise RuntimeError("document store unavailable")

    monkeypatch.setattr(OrderRepository, "add", broken_add)
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 1})
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 3})

    with pytest.raises(OrderPersistenceFailed) as exc_info:
        shop.checkout(alice, checkout_body)

    assert "document store unavailable" in exc_info.value.reason
    assert store.products["A"].stock == 2
    assert store.products["B"].stock == 5
    assert _cart(store, "alice") == [("A", 1), ("B", 3)]
    assert store.orders == {}
    assert sink.events == []
    logging.info("✓ Reservations compensated, cart left for retry")


def test_artificial_failure_at_clear_cart_undoes_everything(shop, store, alice, checkout_body):
    """Failing the last step rolls back the stored order and the reservations."""
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 2})

    with pytest.raises(OrderPersistenceFailed):
        shop.checkout(alice, checkout_body, fail_at_step="ClearCart")

    assert store.orders == {}
    assert store.products["B"].stock == 5
    assert _cart(store, "alice") == [("B", 2)]

    logs = _last_saga_logs(store)
    assert any("COMPENSATE PersistOrder OK" in l for l in logs)
    assert any("COMPENSATE ReserveInventory OK" in l for l in logs)
    assert any("COMPENSATE ClearCart" in l for l in logs) is False


def test_interrupt_mid_checkout_still_releases_stock(shop, store, alice, checkout_body, monkeypatch):
    """A cancelled request (BaseException) must not leak reserved stock."""

    def interrupted(self, owner_id):
        raise KeyboardInterrupt

    monkeypatch.setattr(CartStore, "clear", interrupted)
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 4})

    with pytest.raises(KeyboardInterrupt):
        shop.checkout(alice, checkout_body)

    assert store.products["C"].stock == 10
    assert store.orders == {}
    assert _cart(store, "alice") == [("C", 4)]


def _interrupt_on(monkeypatch, marker):
    """Raise KeyboardInterrupt right after the audit line containing `marker` is written."""
    original_log = Store.log

    def log(self, message):
        original_log(self, message)
        if marker in message:
            raise KeyboardInterrupt

    monkeypatch.setattr(Store, "log", log)


def test_interrupt_right_after_reservation_releases_it(shop, store, alice, checkout_body, monkeypatch):
    """Stock is already taken when the step reports OK; the interrupt lands in between."""
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 4})
    _interrupt_on(monkeypatch, "STEP ReserveInventory OK")

    with pytest.raises(KeyboardInterrupt):
        shop.checkout(alice, checkout_body)

    assert store.products["C"].stock == 10
    assert store.orders == {}
    assert _cart(store, "alice") == [("C", 4)]
    assert any("COMPENSATE ReserveInventory OK" in l for l in store.logs)


def test_interrupt_after_cart_cleared_restores_cart(shop, store, alice, checkout_body, monkeypatch):
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 1})
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 4})
    _interrupt_on(monkeypatch, "STEP ClearCart OK")

    with pytest.raises(KeyboardInterrupt):
        shop.checkout(alice, checkout_body)

    assert _cart(store, "alice") == [("A", 1), ("C", 4)]
    assert store.orders == {}
    assert store.products["A"].stock == 2
    assert store.products["C"].stock == 10
    assert any("COMPENSATE ClearCart OK" in l for l in store.logs)


def test_snapshot_survives_catalog_price_change(shop, store, alice, checkout_body):
    shop.add_to_cart(alice, {"product_id": "B", "quantity": 2})
    order = shop.checkout(alice, checkout_body)

    store.products["B"].price = Decimal("999.00")
    store.products["B"].name = "Renamed"

    stored = shop.get_order(order.order_id, alice)
    assert stored.lines[0].unit_price == Decimal("250.00")
    assert stored.lines[0].name == "Brass tumbler set"
    assert stored.subtotal == sum(l.unit_price * l.quantity for l in stored.lines)
    assert stored.total == stored.subtotal + stored.shipping_charge


def test_notification_failure_does_not_affect_checkout(shop, store, sink, alice, checkout_body):
    sink.configure(should_succeed=False)
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 1})

    order = shop.checkout(alice, checkout_body)

    assert store.orders[order.order_id].status == OrderStatus.PROCESSING
    assert sink.events == []


def test_orchestrator_uses_given_shipping_charge(store, sink, delivery):
    CartStore(store).add_item("alice", "C", 3)

    order = CheckoutOrchestrator(store, sink).checkout(
        "alice", delivery, PaymentMethod.CASH_ON_DELIVERY, shipping_charge=Decimal("0")
    )

    assert order.subtotal == Decimal("150.00")
    assert order.shipping_charge == Decimal("0.00")
    assert order.total == Decimal("150.00")


def _race(*jobs):
    barrier = threading.Barrier(len(jobs))
    outcomes = [None] * len(jobs)

    def run(i, job):
        barrier.wait()
        try:
            outcomes[i] = job()
        except Exception as exc:
            outcomes[i] = exc

    threads = [threading.Thread(target=run, args=(i, job)) for i, job in enumerate(jobs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


def test_concurrent_checkouts_on_disjoint_products_both_succeed(shop, store, alice, bob, checkout_body):
    shop.add_to_cart(alice, {"product_id": "A", "quantity": 2})
    shop.add_to_cart(bob, {"product_id": "B", "quantity": 5})

    first, second = _race(lambda: shop.checkout(alice, checkout_body), lambda: shop.checkout(bob, checkout_body))

    assert first.status == OrderStatus.PROCESSING
    assert second.status == OrderStatus.PROCESSING
    assert store.products["A"].stock == 0
    assert store.products["B"].stock == 0


def test_concurrent_checkouts_contending_for_stock(shop, store, alice, bob, checkout_body):
    """Both carts take one A, then race for all five B. One wins."""
    for who in (alice, bob):
        shop.add_to_cart(who, {"product_id": "B", "quantity": 5})
        shop.add_to_cart(who, {"product_id": "A", "quantity": 1})

    outcomes = _race(lambda: shop.checkout(alice, checkout_body), lambda: shop.checkout(bob, checkout_body))

    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStock)
    assert failures[0].product_id == "B"
    assert len(store.orders) == 1
    assert store.products["B"].stock == 0
    # The loser's A was released again
    assert store.products["A"].stock == 1

    winner = next(iter(store.orders.values()))
    loser = "bob" if winner.owner_id == "alice" else "alice"
    assert _cart(store, winner.owner_id) == []
    assert _cart(store, loser) == [("B", 5), ("A", 1)]


def test_same_cart_cannot_be_checked_out_twice(shop, store, alice, checkout_body):
    shop.add_to_cart(alice, {"product_id": "C", "quantity": 2})

    outcomes = _race(lambda: shop.checkout(alice, checkout_body), lambda: shop.checkout(alice, checkout_body))

    assert sum(isinstance(o, EmptyCart) for o in outcomes) == 1
    assert len(store.orders) == 1
    assert store.products["C"].stock == 8
