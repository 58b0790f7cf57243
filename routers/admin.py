"""Administrative API router."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Path
from typing import Optional

from auth import Caller, require_permission
from cache import CacheService, invalidate
from dependencies import get_cache, get_ledger_service, get_order_service
from errors import ShopError
from schemas import OrderResponse, OrderStatusUpdate
from services.ledger_service import LedgerService
from services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    request: OrderStatusUpdate,
    order_id: str = Path(..., description="Order ID"),
    caller: Caller = Depends(require_permission("admin_write")),
    order_service: OrderService = Depends(get_order_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Move any order to another status - requires admin_write."""
    try:
        order = order_service.update_status(order_id, request.status)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    logger.info("Admin changed order status", extra={
        "admin_id": caller.user_id,
        "order_id": order_id,
        "status": request.status
    })
    invalidate(cache, "update_order_status", owner_id=order.owner_id)
    return order


@router.delete("/wallets/{wallet_id}", status_code=204)
def delete_wallet(
    wallet_id: str = Path(..., description="Wallet ID"),
    caller: Caller = Depends(require_permission("admin_write")),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Delete any empty wallet - requires admin_write."""
    try:
        ledger.delete_wallet(wallet_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    logger.info("Admin deleted wallet", extra={
        "admin_id": caller.user_id,
        "wallet_id": wallet_id
    })
