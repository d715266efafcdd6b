"""FastAPI routes for carts, orders and the back office.

The upstream authentication layer resolves the caller and forwards it in the
X-User-Id / X-User-Role headers; requests without an identity get 401.

Usage:
    uvicorn order_saga.api:app
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from order_saga.errors import (
    EmptyCart,
    IllegalStatusTransition,
    InsufficientStock,
    InvalidInput,
    MissingProof,
    NotAuthorized,
    NotAwaitingPayment,
    NotFound,
    OrderError,
    OrderPersistenceFailed,
)
from order_saga.models import Identity, OrderStatus, Role
from order_saga.schemas import (
    AddToCartRequest,
    CartResponse,
    CheckoutRequest,
    OrderResponse,
    PaymentProofRequest,
    SetStatusRequest,
    UpdateCartItemRequest,
    error_list,
)
from order_saga.storefront import Storefront

# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidInput: 422,
    EmptyCart: 400,
    MissingProof: 400,
    NotAuthorized: 403,
    NotFound: 404,
    InsufficientStock: 409,
    IllegalStatusTransition: 409,
    NotAwaitingPayment: 409,
    OrderPersistenceFailed: 503,
}


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


def get_identity(
    x_user_id: str = Header(default=""),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    return Identity(user_id=x_user_id, role=role)


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
def get_cart(identity: Identity = Depends(get_identity), shop: Storefront = Depends(get_storefront)):
    return CartResponse.from_cart(shop.get_cart(identity), shop.store.get_product)


@cart_router.post("/items", response_model=CartResponse)
def add_cart_item(
    body: AddToCartRequest,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return CartResponse.from_cart(shop.add_to_cart(identity, body), shop.store.get_product)


@cart_router.put("/items/{product_id}", response_model=CartResponse)
def update_cart_item(
    product_id: str,
    body: UpdateCartItemRequest,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return CartResponse.from_cart(shop.update_cart_item(identity, product_id, body), shop.store.get_product)


@cart_router.delete("/items/{product_id}", response_model=CartResponse)
def remove_cart_item(
    product_id: str,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return CartResponse.from_cart(shop.remove_from_cart(identity, product_id), shop.store.get_product)


@cart_router.delete("", response_model=CartResponse)
def clear_cart(identity: Identity = Depends(get_identity), shop: Storefront = Depends(get_storefront)):
    return CartResponse.from_cart(shop.clear_cart(identity), shop.store.get_product)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/checkout", status_code=201, response_model=OrderResponse)
def checkout(
    body: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return OrderResponse.from_order(shop.checkout(identity, body))


@order_router.get("", response_model=List[OrderResponse])
def list_my_orders(identity: Identity = Depends(get_identity), shop: Storefront = Depends(get_storefront)):
    return [OrderResponse.from_order(order) for order in shop.list_orders(identity)]


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, identity: Identity = Depends(get_identity), shop: Storefront = Depends(get_storefront)):
    return OrderResponse.from_order(shop.get_order(order_id, identity))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(order_id: str, identity: Identity = Depends(get_identity), shop: Storefront = Depends(get_storefront)):
    return OrderResponse.from_order(shop.cancel(order_id, identity))


@order_router.post("/{order_id}/payment-proof", response_model=OrderResponse)
def submit_payment_proof(
    order_id: str,
    body: PaymentProofRequest,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return OrderResponse.from_order(shop.submit_payment_proof(order_id, identity, body))


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


@admin_router.get("", response_model=List[OrderResponse])
def list_all_orders(
    status: Optional[OrderStatus] = None,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return [OrderResponse.from_order(order) for order in shop.list_all_orders(identity, status=status)]


@admin_router.put("/{order_id}/status", response_model=OrderResponse)
def set_order_status(
    order_id: str,
    body: SetStatusRequest,
    identity: Identity = Depends(get_identity),
    shop: Storefront = Depends(get_storefront),
):
    return OrderResponse.from_order(shop.set_status(order_id, body, identity))


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    """Map OrderError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, InsufficientStock):
        content["product_id"] = exc.product_id
    if isinstance(exc, InvalidInput):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and params the same way as InvalidInput."""
    return await order_error_handler(request, InvalidInput(error_list(exc.errors())))


def create_app(storefront: Optional[Storefront] = None) -> FastAPI:
    app = FastAPI(
        title="Order Saga API",
        description="Cart checkout, inventory reservation and order status management",
    )
    app.state.storefront = storefront or Storefront()
    app.add_exception_handler(OrderError, order_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(admin_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "orders": len(app.state.storefront.store.orders)}

    return app


app = create_app()
