from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Dict, List, Tuple

from order_saga.models import Cart, Order, Product

logger = logging.getLogger(__name__)


class Store:
    """
    In-memory document store for products, carts and orders.

    Read-modify-write on a product, a cart or an order must happen under the
    matching lock from product_lock() / cart_lock() / order_lock(). Locks are
    re-entrant and keyed per document, so different products and orders are
    mutated in parallel. When several are needed, take them in the order
    cart -> order -> product.

    `logs` keeps every audit line (for the demo and tests).
    """

    def __init__(self) -> None:
        self.products: Dict[str, Product] = {}
        self.carts: Dict[str, Cart] = {}
        self.orders: Dict[str, Order] = {}

        self.logs: List[str] = []

        self._locks: Dict[Tuple[str, str], threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._log_lock = threading.Lock()

    def log(self, message: str) -> None:
        with self._log_lock:
            self.logs.append(message)
        logger.info(message)

    def _lock(self, kind: str, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get((kind, key))
            if lock is None:
                lock = self._locks[(kind, key)] = threading.RLock()
            return lock

    def product_lock(self, product_id: str) -> threading.RLock:
        return self._lock("product", product_id)

    def cart_lock(self, owner_id: str) -> threading.RLock:
        return self._lock("cart", owner_id)

    def order_lock(self, order_id: str) -> threading.RLock:
        return self._lock("order", order_id)

    # Catalog is owned elsewhere; these stand in for it in the demo and tests
    def add_product(self, product_id: str, name: str, price: Decimal, stock: int) -> None:
        if stock < 0:
            raise ValueError(f"Stock for {product_id} cannot be negative")
        self.products[product_id] = Product(product_id=product_id, name=name, price=price, stock=stock)

    def get_product(self, product_id: str) -> Product | None:
        return self.products.get(product_id)
