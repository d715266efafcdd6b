from __future__ import annotations

import logging

from order_saga.errors import InsufficientStock, InvalidInput, NotFound
from order_saga.models import Cart, CartLine
from order_saga.store import Store

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Per-product available quantity. Knows nothing about carts or orders."""

    def __init__(self, store: Store):
        self.store = store

    def available(self, product_id: str) -> int:
        product = self.store.get_product(product_id)
        return product.stock if product else 0

    def reserve(self, product_id: str, qty: int, order_id: str | None = None) -> int:
        if qty <= 0:
            raise InvalidInput(f"Reservation quantity must be > 0, got {qty}")
        with self.store.product_lock(product_id):
            product = self.store.get_product(product_id)
            if not product:
                raise InsufficientStock(product_id, requested=qty, available=0)
            if product.stock < qty:
                raise InsufficientStock(product_id, requested=qty, available=product.stock)
            product.stock -= qty
            self.store.log(f"[order={order_id}] inventory reserved: {product_id} qty={qty} (stock={product.stock})")
            return product.stock

    def release(self, product_id: str, qty: int, order_id: str | None = None) -> int:
        if qty <= 0:
            raise InvalidInput(f"Release quantity must be > 0, got {qty}")
        with self.store.product_lock(product_id):
            product = self.store.get_product(product_id)
            if not product:
                logger.warning("Product %s no longer exists, dropping release of %s", product_id, qty)
                return 0
            product.stock += qty
            self.store.log(f"[order={order_id}] inventory released: {product_id} qty={qty} (stock={product.stock})")
            return product.stock


class CartStore:
    """
    One mutable cart per user. Hold cart_lock(owner_id) for multi-step changes.

    Every method returns a copy taken under the lock, never the stored cart.
    """

    def __init__(self, store: Store):
        self.store = store

    def get(self, owner_id: str) -> Cart:
        """Return the user's cart; an empty, unsaved one if they never added anything."""
        with self.store.cart_lock(owner_id):
            return _copy(self.store.carts.get(owner_id) or Cart(owner_id=owner_id))

    def add_item(self, owner_id: str, product_id: str, qty: int = 1) -> Cart:
        if qty <= 0:
            raise InvalidInput(f"Quantity must be > 0, got {qty}")
        if not self.store.get_product(product_id):
            raise NotFound("Product", product_id)
        with self.store.cart_lock(owner_id):
            cart = self.store.carts.setdefault(owner_id, Cart(owner_id=owner_id))
            line = cart.find(product_id)
            if line:
                line.quantity += qty
            else:
                cart.lines.append(CartLine(product_id=product_id, quantity=qty))
            logger.debug("Cart of %s: +%s x %s", owner_id, qty, product_id)
            return _copy(cart)

    def update_quantity(self, owner_id: str, product_id: str, qty: int) -> Cart:
        if qty <= 0:
            raise InvalidInput(f"Quantity must be > 0, got {qty}")
        with self.store.cart_lock(owner_id):
            cart = self.store.carts.get(owner_id)
            line = cart.find(product_id) if cart else None
            if not line:
                raise NotFound("CartLine", product_id)
            line.quantity = qty
            return _copy(cart)

    def remove_item(self, owner_id: str, product_id: str) -> Cart:
        with self.store.cart_lock(owner_id):
            cart = self.store.carts.get(owner_id)
            if not cart or not cart.find(product_id):
                raise NotFound("CartLine", product_id)
            cart.lines = [line for line in cart.lines if line.product_id != product_id]
            return _copy(cart)

    def clear(self, owner_id: str) -> Cart:
        with self.store.cart_lock(owner_id):
            cart = self.store.carts.get(owner_id)
            if cart:
                cart.lines = []
            return Cart(owner_id=owner_id)

    def restore(self, owner_id: str, lines: list[CartLine]) -> None:
        with self.store.cart_lock(owner_id):
            cart = self.store.carts.setdefault(owner_id, Cart(owner_id=owner_id))
            cart.lines = [CartLine(product_id=line.product_id, quantity=line.quantity) for line in lines]


def _copy(cart: Cart) -> Cart:
    return Cart(
        owner_id=cart.owner_id,
        lines=[CartLine(product_id=line.product_id, quantity=line.quantity) for line in cart.lines],
    )
