"""Products API router."""
from fastapi import APIRouter, Depends, HTTPException, Path, Query
from typing import List, Optional
from opentelemetry import trace

from auth import Caller, require_permission
from cache import CacheService, cached, invalidate
from dependencies import get_cache, get_product_service
from errors import ShopError
from schemas import ProductCreate, ProductResponse, RestockRequest
from services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductResponse])
def list_products(
    in_stock_only: bool = Query(False, description="Only products with stock on hand"),
    caller: Caller = Depends(require_permission("products_read")),
    product_service: ProductService = Depends(get_product_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Get the catalog, sorted by name."""
    products = cached(
        cache,
        "list_products",
        lambda: [
            ProductResponse.model_validate(p).model_dump(mode="json")
            for p in product_service.list_products(in_stock_only=in_stock_only)
        ],
        in_stock_only=in_stock_only
    )

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    return products


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str = Path(..., description="Product ID"),
    caller: Caller = Depends(require_permission("products_read")),
    product_service: ProductService = Depends(get_product_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Get product details."""
    trace.get_current_span().set_attribute("product.id", product_id)
    try:
        return cached(
            cache,
            "get_product",
            lambda: ProductResponse.model_validate(
                product_service.get_product(product_id)
            ).model_dump(mode="json"),
            product_id=product_id
        )
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("", response_model=ProductResponse, status_code=201)
def create_product(
    request: ProductCreate,
    caller: Caller = Depends(require_permission("products_write")),
    product_service: ProductService = Depends(get_product_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Add a product to the catalog - requires products_write."""
    try:
        product = product_service.create_product(
            name=request.name,
            slug=request.slug,
            price_minor=request.price_minor,
            currency=request.currency,
            stock_qty=request.stock_qty,
            category=request.category
        )
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    invalidate(cache, "create_product")
    return product


@router.post("/{product_id}/restock", response_model=ProductResponse)
def restock_product(
    request: RestockRequest,
    product_id: str = Path(..., description="Product ID"),
    caller: Caller = Depends(require_permission("products_write")),
    product_service: ProductService = Depends(get_product_service),
    cache: Optional[CacheService] = Depends(get_cache)
):
    """Add units to a product's stock - requires products_write."""
    try:
        product = product_service.restock(product_id, request.qty)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    invalidate(cache, "restock_product", product_id=product_id)
    return product
