"""Exceptions raised by the order lifecycle core.

Client errors carry enough detail to act on and are never retried.
OrderPersistenceFailed is safe to retry from scratch.
"""

from __future__ import annotations

from typing import Any, List, Optional


class OrderError(Exception):
    """Base exception for all order lifecycle errors."""

    pass


class InvalidInput(OrderError):
    """Raised when a request does not have the expected shape."""

    def __init__(self, errors: List[Any] | str):
        self.errors = errors if isinstance(errors, list) else [errors]
        super().__init__(f"Invalid input: {self.errors}")


class EmptyCart(OrderError):
    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Cart of user {owner_id} is empty")


class InsufficientStock(OrderError):
    """Raised when a reservation asks for more than is available."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_id}: have={available}, need={requested}"
        )


class NotFound(OrderError):
    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class NotAuthorized(OrderError):
    def __init__(self, user_id: Optional[str], action: str):
        self.user_id = user_id
        self.action = action
        super().__init__(f"User {user_id} is not allowed to {action}")


class IllegalStatusTransition(OrderError):
    def __init__(self, order_id: str, current: Any, target: Any):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(
            f"Order {order_id}: cannot transition from {_value(current)} to {_value(target)}"
        )


class NotAwaitingPayment(OrderError):
    def __init__(self, order_id: str, status: Any):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is not awaiting payment (status={_value(status)})")


class MissingProof(OrderError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id}: a proof-of-payment artifact is required")


class OrderPersistenceFailed(OrderError):
    """Raised when an order could not be stored after its stock was reserved.

    All reservations have been released by the time this is raised.
    """

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Order {order_id} could not be persisted: {reason}")


def _value(status: Any) -> str:
    return getattr(status, "value", str(status))
