from __future__ import annotations

import argparse
from dataclasses import replace
from decimal import Decimal

from order_saga.config import Settings, configure_logging
from order_saga.errors import OrderError
from order_saga.models import Identity, OrderStatus, PaymentMethod, Role
from order_saga.notifications import InMemoryNotificationSink
from order_saga.store import Store
from order_saga.storefront import Storefront

ADMIN = Identity(user_id="admin", role=Role.ADMINISTRATOR)


def seed(store: Store) -> None:
    store.add_product("ITEM001", name="Filter coffee 500g", price=Decimal("100.00"), stock=10)
    store.add_product("ITEM002", name="Brass tumbler set", price=Decimal("250.00"), stock=5)
    store.add_product("ITEM003", name="Banana chips 200g", price=Decimal("50.00"), stock=0)


def main() -> None:
    settings = Settings.from_env()

    p = argparse.ArgumentParser(description="Check out one cart and drive the order through its lifecycle.")
    p.add_argument("--user-id", type=str, default="user-1")
    p.add_argument("--sku", type=str, action="append", help="Product to add (repeatable), default ITEM001")
    p.add_argument("--qty", type=int, default=1)
    p.add_argument(
        "--payment",
        choices=[m.value for m in PaymentMethod],
        default=PaymentMethod.CASH_ON_DELIVERY.value,
    )
    p.add_argument("--shipping", type=Decimal, default=settings.shipping_charge)
    p.add_argument("--fail-at", type=str, default=None, help="Step to fail artificially (e.g. PersistOrder)")
    p.add_argument("--proof", type=str, default=None, help="Proof-of-payment reference to submit (prepaid)")
    p.add_argument("--cancel", action="store_true", help="Cancel the order as its owner")
    p.add_argument("--advance", choices=[OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value], default=None)
    p.add_argument("--log-level", type=str, default=settings.log_level)
    args = p.parse_args()

    configure_logging(args.log_level.upper(), fmt="%(message)s")

    store = Store()
    seed(store)
    sink = InMemoryNotificationSink()
    shop = Storefront(store, sink=sink, settings=replace(settings, shipping_charge=args.shipping))
    user = Identity(user_id=args.user_id)

    order = None
    try:
        for sku in args.sku or ["ITEM001"]:
            shop.add_to_cart(user, {"product_id": sku, "quantity": args.qty})
        order = shop.checkout(
            user,
            {
                "delivery": {"name": "Demo User", "phone": "+91 98400 12345", "address": "12 Anna Salai, Chennai"},
                "payment_method": args.payment,
            },
            fail_at_step=args.fail_at,
        )
        if args.proof:
            order = shop.submit_payment_proof(order.order_id, user, {"artifact_ref": args.proof})
        if args.cancel:
            order = shop.cancel(order.order_id, user)
        if args.advance:
            order = shop.set_status(order.order_id, {"status": OrderStatus.SHIPPED.value}, ADMIN)
            if args.advance == OrderStatus.DELIVERED.value:
                order = shop.set_status(order.order_id, {"status": OrderStatus.DELIVERED.value}, ADMIN)
    except OrderError as exc:
        print(f"\nfailed: {type(exc).__name__}: {exc}")

    print("\n=== RESULT ===")
    print("order:", order)
    print("cart:", shop.get_cart(user))
    print("products:", store.products)
    print("events:", [(e.kind.value, e.status.value) for e in sink.events])


if __name__ == "__main__":
    main()
