"""Pytest fixtures for the order lifecycle."""

from decimal import Decimal

import pytest

from order_saga.config import Settings
from order_saga.models import DeliveryDetails, Identity, Role
from order_saga.notifications import InMemoryNotificationSink, reset_sink
from order_saga.store import Store
from order_saga.storefront import Storefront


@pytest.fixture
def store() -> Store:
    store = Store()

    store.add_product("A", name="Filter coffee 500g", price=Decimal("100.00"), stock=2)
    store.add_product("B", name="Brass tumbler set", price=Decimal("250.00"), stock=5)
    store.add_product("C", name="Banana chips 200g", price=Decimal("50.00"), stock=10)
    store.add_product("Z", name="Out of stock pickle", price=Decimal("80.00"), stock=0)

    return store


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture(autouse=True)
def _reset_global_sink():
    yield
    reset_sink()


@pytest.fixture
def shop(store, sink) -> Storefront:
    return Storefront(store, sink=sink, settings=Settings(shipping_charge=Decimal("40.00")))


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(user_id="bob")


@pytest.fixture
def admin() -> Identity:
    return Identity(user_id="root", role=Role.ADMINISTRATOR)


@pytest.fixture
def delivery() -> DeliveryDetails:
    return DeliveryDetails(name="Alice", phone="+91 98400 12345", address="12 Anna Salai, Chennai")


@pytest.fixture
def checkout_body() -> dict:
    return {
        "delivery": {"name": "Alice", "phone": "+91 98400 12345", "address": "12 Anna Salai, Chennai"},
        "payment_method": "CashOnDelivery",
    }


@pytest.fixture
def prepaid_body(checkout_body) -> dict:
    return {**checkout_body, "payment_method": "PrepaidManualVerification"}
