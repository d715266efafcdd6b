"""Pydantic request/response schemas.

Requests are validated strictly: unknown fields and malformed values are
rejected instead of producing a partly filled record.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from order_saga.errors import InvalidInput
from order_saga.models import Cart, DeliveryDetails, Order, OrderStatus, PaymentMethod, Product, money

RequestT = TypeVar("RequestT", bound=BaseModel)


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def parse(model: Type[RequestT], payload: RequestT | Mapping[str, Any]) -> RequestT:
    """Validate `payload` against `model`, raising InvalidInput on failure."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInput(error_list(exc.errors())) from exc


def error_list(errors: List[Mapping[str, Any]]) -> List[dict]:
    """Reduce pydantic error dicts to their JSON-safe location and message."""
    return [{"loc": list(err["loc"]), "msg": err["msg"]} for err in errors]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class DeliverySchema(_Request):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(pattern=r"^\+?[0-9][0-9 \-]{5,19}$")
    address: str = Field(min_length=1, max_length=1000)

    def to_model(self) -> DeliveryDetails:
        return DeliveryDetails(name=self.name, phone=self.phone, address=self.address)


class CheckoutRequest(_Request):
    delivery: DeliverySchema
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {
                    "delivery": {
                        "name": "Priya",
                        "phone": "+91 98400 12345",
                        "address": "12 Anna Salai, Chennai",
                    },
                    "payment_method": "CashOnDelivery",
                }
            ]
        },
    )


class AddToCartRequest(_Request):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, default=1)


class UpdateCartItemRequest(_Request):
    quantity: int = Field(ge=1)


class SetStatusRequest(_Request):
    status: OrderStatus


class PaymentProofRequest(_Request):
    # Left optional so a missing artifact surfaces as MissingProof, not InvalidInput
    artifact_ref: str | None = None
    external_transaction_ref: str | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class CartLineResponse(BaseModel):
    product_id: str
    quantity: int
    # None once the product has left the catalog
    name: str | None = None
    unit_price: Decimal | None = None
    line_total: Decimal | None = None


class CartResponse(BaseModel):
    """Cart with current catalog name and price per line, like the storefront shows it."""

    owner_id: str
    lines: List[CartLineResponse]
    subtotal: Decimal

    @classmethod
    def from_cart(cls, cart: Cart, get_product: Callable[[str], Product | None]) -> "CartResponse":
        lines = []
        for line in cart.lines:
            product = get_product(line.product_id)
            if product is None:
                lines.append(CartLineResponse(product_id=line.product_id, quantity=line.quantity))
                continue
            lines.append(
                CartLineResponse(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    name=product.name,
                    unit_price=product.price,
                    line_total=money(product.price * line.quantity),
                )
            )
        subtotal = money(sum((l.line_total for l in lines if l.line_total is not None), Decimal("0")))
        return cls(owner_id=cart.owner_id, lines=lines, subtotal=subtotal)


class DeliveryResponse(BaseModel):
    name: str
    phone: str
    address: str


class OrderLineResponse(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderResponse(BaseModel):
    order_id: str
    owner_id: str
    lines: List[OrderLineResponse]
    delivery: DeliveryResponse
    subtotal: Decimal
    shipping_charge: Decimal
    total: Decimal
    payment_method: PaymentMethod
    status: OrderStatus
    proof_of_payment_ref: str | None = None
    external_transaction_ref: str | None = None
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            order_id=order.order_id,
            owner_id=order.owner_id,
            lines=[
                OrderLineResponse(
                    product_id=line.product_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in order.lines
            ],
            delivery=DeliveryResponse(
                name=order.delivery.name,
                phone=order.delivery.phone,
                address=order.delivery.address,
            ),
            subtotal=order.subtotal,
            shipping_charge=order.shipping_charge,
            total=order.total,
            payment_method=order.payment_method,
            status=order.status,
            proof_of_payment_ref=order.proof_of_payment_ref,
            external_transaction_ref=order.external_transaction_ref,
            created_at=order.created_at,
        )
