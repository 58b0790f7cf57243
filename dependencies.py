"""Dependency injection for services."""
from typing import Optional
import redis
from fastapi import Request

from cache import CacheService
from services.cart_service import CartService
from services.ledger_service import LedgerService
from services.order_service import OrderService
from services.product_service import ProductService
from services.user_wallet_service import UserWalletService


def get_redis(request: Request) -> Optional[redis.Redis]:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_cache(request: Request) -> Optional[CacheService]:
    """Get the read cache, or None when the app runs without Redis."""
    return request.app.state.cache


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger_service


def get_user_wallet_service(request: Request) -> UserWalletService:
    return request.app.state.user_wallet_service


def get_product_service(request: Request) -> ProductService:
    return request.app.state.product_service


def get_cart_service(request: Request) -> CartService:
    return request.app.state.cart_service


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service
