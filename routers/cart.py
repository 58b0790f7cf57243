"""Cart API router."""
from fastapi import APIRouter, Depends, HTTPException, Path

from auth import Caller, require_permission
from dependencies import get_cart_service
from errors import ShopError
from schemas import AddToCartRequest, CartResponse, UpdateCartItemRequest
from services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
def get_cart(
    caller: Caller = Depends(require_permission("cart_read")),
    cart_service: CartService = Depends(get_cart_service)
):
    """Get user's cart - requires authentication."""
    return cart_service.get_cart(caller.user_id)


@router.post("/items", response_model=CartResponse)
def add_to_cart(
    request: AddToCartRequest,
    caller: Caller = Depends(require_permission("cart_write")),
    cart_service: CartService = Depends(get_cart_service)
):
    """Add item to cart - requires authentication."""
    try:
        return cart_service.add_item(caller.user_id, request.product_id, request.qty)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.patch("/items/{product_id}", response_model=CartResponse)
def update_cart_item(
    request: UpdateCartItemRequest,
    product_id: str = Path(..., description="Product ID"),
    caller: Caller = Depends(require_permission("cart_write")),
    cart_service: CartService = Depends(get_cart_service)
):
    """Change a line's quantity; 0 removes it."""
    try:
        return cart_service.update_item_quantity(caller.user_id, product_id, request.qty)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.delete("/items/{product_id}", response_model=CartResponse)
def remove_cart_item(
    product_id: str = Path(..., description="Product ID"),
    caller: Caller = Depends(require_permission("cart_write")),
    cart_service: CartService = Depends(get_cart_service)
):
    try:
        return cart_service.remove_item(caller.user_id, product_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.delete("", response_model=CartResponse)
def clear_cart(
    caller: Caller = Depends(require_permission("cart_write")),
    cart_service: CartService = Depends(get_cart_service)
):
    """Empty the cart."""
    try:
        return cart_service.clear_cart(caller.user_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
