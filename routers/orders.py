"""Orders API router."""
from fastapi import APIRouter, Depends, HTTPException, Path
from typing import Optional
from opentelemetry import trace

from auth import Caller, require_permission
from cache import CacheService, cached, invalidate
from dependencies import get_cache, get_order_service
from errors import ShopError
from schemas import CreateOrderRequest, OrderResponse, OrdersListResponse
from services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    request: CreateOrderRequest,
    caller: Caller = Depends(require_permission("orders_write")),
    order_service: OrderService = Depends(get_order_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """
    Place an order from the caller's cart, paid from one of their wallets.

    Stock, balance and cart change together or not at all.
    """
    span = trace.get_current_span()
    span.set_attribute("wallet.id", request.wallet_id)
    try:
        order = order_service.create_order_from_cart(caller.user_id, request.wallet_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    span.set_attribute("order.id", order.id)
    invalidate(cache, "create_order", owner_id=caller.user_id)
    return order


@router.get("", response_model=OrdersListResponse)
def get_orders(
    caller: Caller = Depends(require_permission("orders_read")),
    order_service: OrderService = Depends(get_order_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Get the caller's orders, newest first."""
    orders = cached(
        cache,
        "list_orders",
        lambda: [
            OrderResponse.model_validate(order).model_dump(mode="json")
            for order in order_service.get_user_orders(caller.user_id)
        ],
        owner_id=caller.user_id
    )
    return {"orders": orders}


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str = Path(..., description="Order ID"),
    caller: Caller = Depends(require_permission("orders_read")),
    order_service: OrderService = Depends(get_order_service)
):
    try:
        return order_service.get_order(caller.user_id, order_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
