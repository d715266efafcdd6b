from __future__ import annotations

from typing import Optional

from order_saga.errors import MissingProof, NotAuthorized, NotAwaitingPayment
from order_saga.models import Identity, Order, OrderStatus, PaymentMethod
from order_saga.status import OrderStatusMachine
from order_saga.store import Store


class PaymentConfirmationHandler:
    """
    Records proof of an out-of-band payment for a prepaid order and hands the
    order over for fulfillment. Nothing here verifies the payment: an
    administrator checks the artifact before shipping.
    """

    def __init__(self, store: Store, machine: OrderStatusMachine):
        self.store = store
        self.machine = machine

    def submit(
        self,
        order_id: str,
        identity: Identity,
        artifact_ref: Optional[str],
        external_txn_ref: Optional[str] = None,
    ) -> Order:
        with self.store.order_lock(order_id):
            order = self.machine.orders.get(order_id)
            if order.owner_id != identity.user_id:
                raise NotAuthorized(identity.user_id, f"submit payment proof for order {order_id}")
            if not artifact_ref or not artifact_ref.strip():
                raise MissingProof(order_id)
            if (
                order.payment_method != PaymentMethod.PREPAID_MANUAL_VERIFICATION
                or order.status != OrderStatus.AWAITING_PAYMENT
            ):
                raise NotAwaitingPayment(order_id, order.status)

            order, _ = self.machine.apply(
                order,
                OrderStatus.PROCESSING,
                proof_of_payment_ref=artifact_ref.strip(),
                external_transaction_ref=(external_txn_ref or "").strip() or None,
            )
            self.store.log(f"[order={order_id}] payment proof recorded ref={order.proof_of_payment_ref}")
        self.machine.notify(order)
        return order
