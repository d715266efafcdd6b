"""Identity-aware entry point to the order lifecycle.

Every call takes the caller's Identity as resolved by the authentication
layer; nothing here keeps session state. Request payloads may be schema
instances or plain mappings, and are validated with schemas.parse().
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from order_saga.config import Settings
from order_saga.errors import NotAuthorized
from order_saga.models import Cart, Identity, Order, OrderStatus
from order_saga.notifications import NotificationSink, get_sink
from order_saga.payment import PaymentConfirmationHandler
from order_saga.repository import OrderRepository
from order_saga.saga import CheckoutOrchestrator
from order_saga.schemas import (
    AddToCartRequest,
    CheckoutRequest,
    PaymentProofRequest,
    SetStatusRequest,
    UpdateCartItemRequest,
    parse,
)
from order_saga.services import CartStore
from order_saga.status import OrderStatusMachine
from order_saga.store import Store

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(
        self,
        store: Optional[Store] = None,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or Store()
        self.sink = sink or get_sink()
        self.settings = settings or Settings.from_env()

        self.carts = CartStore(self.store)
        self.orders = OrderRepository(self.store)
        self.checkout_saga = CheckoutOrchestrator(self.store, self.sink)
        self.status_machine = OrderStatusMachine(self.store, self.sink)
        self.payments = PaymentConfirmationHandler(self.store, self.status_machine)

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------
    def get_cart(self, identity: Identity) -> Cart:
        return self.carts.get(identity.user_id)

    def add_to_cart(self, identity: Identity, request: AddToCartRequest | Mapping[str, Any]) -> Cart:
        request = parse(AddToCartRequest, request)
        return self.carts.add_item(identity.user_id, request.product_id, request.quantity)

    def update_cart_item(
        self, identity: Identity, product_id: str, request: UpdateCartItemRequest | Mapping[str, Any]
    ) -> Cart:
        request = parse(UpdateCartItemRequest, request)
        return self.carts.update_quantity(identity.user_id, product_id, request.quantity)

    def remove_from_cart(self, identity: Identity, product_id: str) -> Cart:
        return self.carts.remove_item(identity.user_id, product_id)

    def clear_cart(self, identity: Identity) -> Cart:
        return self.carts.clear(identity.user_id)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def checkout(
        self,
        identity: Identity,
        request: CheckoutRequest | Mapping[str, Any],
        fail_at_step: Optional[str] = None,
    ) -> Order:
        request = parse(CheckoutRequest, request)
        order = self.checkout_saga.checkout(
            owner_id=identity.user_id,
            delivery=request.delivery.to_model(),
            payment_method=request.payment_method,
            shipping_charge=self.settings.shipping_charge,
            fail_at_step=fail_at_step,
        )
        logger.info("Order %s placed by %s, total=%s", order.order_id, identity.user_id, order.total)
        return order

    def cancel(self, order_id: str, identity: Identity) -> Order:
        return self.status_machine.cancel(order_id, identity)

    def set_status(
        self,
        order_id: str,
        request: SetStatusRequest | Mapping[str, Any],
        identity: Identity,
    ) -> Order:
        request = parse(SetStatusRequest, request)
        return self.status_machine.set_status(order_id, request.status, identity)

    def submit_payment_proof(
        self,
        order_id: str,
        identity: Identity,
        request: PaymentProofRequest | Mapping[str, Any],
    ) -> Order:
        request = parse(PaymentProofRequest, request)
        return self.payments.submit(
            order_id,
            identity,
            artifact_ref=request.artifact_ref,
            external_txn_ref=request.external_transaction_ref,
        )

    def get_order(self, order_id: str, identity: Identity) -> Order:
        order = self.orders.get(order_id)
        if not identity.is_admin and order.owner_id != identity.user_id:
            raise NotAuthorized(identity.user_id, f"view order {order_id}")
        return order

    def list_orders(self, identity: Identity) -> List[Order]:
        return self.orders.list_for_owner(identity.user_id)

    def list_all_orders(self, identity: Identity, status: Optional[OrderStatus] = None) -> List[Order]:
        if not identity.is_admin:
            raise NotAuthorized(identity.user_id, "list all orders")
        return self.orders.list_all(status=status)
