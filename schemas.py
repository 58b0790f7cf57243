"""Pydantic schemas for request/response validation.

Money is always an integer count of minor units (cents) plus an ISO 4217
currency code.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    price_minor: int
    currency: str
    stock_qty: int = 0
    category: Optional[str] = None


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    price_minor: int
    currency: str
    stock_qty: int
    category: Optional[str] = None


class RestockRequest(BaseModel):
    qty: int


class AddToCartRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: str
    qty: int


class UpdateCartItemRequest(BaseModel):
    qty: int


class CartItemResponse(BaseModel):
    """Schema for cart item in response."""
    id: str
    product_id: str
    product_name: str
    price_minor: int
    currency: str
    qty: int
    subtotal_minor: int


class CartResponse(BaseModel):
    """Schema for cart response."""
    id: Optional[str] = None
    user_id: str
    items: List[CartItemResponse]
    total_minor: int
    currency: Optional[str] = None


class WalletCreate(BaseModel):
    """Schema for creating a wallet."""
    currency: str
    initial_balance: int = 0


class WalletAmountRequest(BaseModel):
    amount_minor: int


class TransferRequest(BaseModel):
    """Schema for a transfer from the caller's wallet in ``currency``."""
    to_wallet_id: str
    currency: str
    amount_minor: int


class WalletResponse(BaseModel):
    """Schema for wallet response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    currency: str
    balance_minor: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BalanceResponse(BaseModel):
    currency: str
    balance_minor: int


class OrderItemResponse(BaseModel):
    """Schema for an order line snapshot."""
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    qty: int
    unit_price_minor: int
    currency: str


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    total_minor: int
    currency: str
    status: str
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse]


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[OrderResponse]


class OrderStatusUpdate(BaseModel):
    status: str


class MessageResponse(BaseModel):
    message: str


class CreateOrderRequest(BaseModel):
    """Schema for placing an order from the cart."""
    wallet_id: str
