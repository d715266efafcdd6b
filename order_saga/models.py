from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENTS)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CashOnDelivery"
    PREPAID_MANUAL_VERIFICATION = "PrepaidManualVerification"


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "AwaitingPayment"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True, slots=True)
class Identity:
    """Caller identity as resolved by the authentication layer."""

    user_id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMINISTRATOR


@dataclass(slots=True)
class Product:
    product_id: str
    name: str
    price: Decimal
    stock: int


@dataclass(slots=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass(slots=True)
class Cart:
    """One cart per user. Emptied on checkout, never deleted."""

    owner_id: str
    lines: List[CartLine] = field(default_factory=list)

    def find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    @property
    def is_empty(self) -> bool:
        return not self.lines


@dataclass(frozen=True, slots=True)
class OrderLine:
    """Name and price as they were when stock was reserved."""

    product_id: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True, slots=True)
class DeliveryDetails:
    name: str
    phone: str
    address: str


@dataclass(frozen=True, slots=True)
class Order:
    """
    Order record. Only status, proof_of_payment_ref and
    external_transaction_ref ever change, through dataclasses.replace().
    """

    order_id: str
    owner_id: str
    lines: Tuple[OrderLine, ...]
    delivery: DeliveryDetails
    subtotal: Decimal
    shipping_charge: Decimal
    total: Decimal
    payment_method: PaymentMethod
    status: OrderStatus
    created_at: datetime
    proof_of_payment_ref: Optional[str] = None
    external_transaction_ref: Optional[str] = None

    def __post_init__(self) -> None:
        if self.subtotal != money(sum((line.line_total for line in self.lines), Decimal("0"))):
            raise ValueError(f"Order {self.order_id}: subtotal does not match its lines")
        if self.total != money(self.subtotal + self.shipping_charge):
            raise ValueError(f"Order {self.order_id}: total must equal subtotal + shipping charge")

    @classmethod
    def create(
        cls,
        order_id: str,
        owner_id: str,
        lines: List[OrderLine],
        delivery: DeliveryDetails,
        shipping_charge: Decimal,
        payment_method: PaymentMethod,
    ) -> "Order":
        subtotal = money(sum((line.line_total for line in lines), Decimal("0")))
        shipping = money(shipping_charge)
        if payment_method == PaymentMethod.PREPAID_MANUAL_VERIFICATION:
            status = OrderStatus.AWAITING_PAYMENT
        else:
            status = OrderStatus.PROCESSING
        return cls(
            order_id=order_id,
            owner_id=owner_id,
            lines=tuple(lines),
            delivery=delivery,
            subtotal=subtotal,
            shipping_charge=shipping,
            total=money(subtotal + shipping),
            payment_method=payment_method,
            status=status,
            created_at=utcnow(),
        )


class EventKind(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class OrderEvent:
    kind: EventKind
    order_id: str
    owner_id: str
    status: OrderStatus
    timestamp: datetime

    @classmethod
    def for_order(cls, kind: EventKind, order: Order) -> "OrderEvent":
        return cls(
            kind=kind,
            order_id=order.order_id,
            owner_id=order.owner_id,
            status=order.status,
            timestamp=utcnow(),
        )
