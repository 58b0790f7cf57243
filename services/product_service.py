"""Catalog and inventory service."""
import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from errors import Duplicate, InsufficientStock, NotFound
from models import Product
from monitoring import stock_restocks_counter
from unit_of_work import UnitOfWork, run_in_transaction
from validation import normalize_currency, require_non_negative, require_positive

logger = logging.getLogger(__name__)


class ProductService:
    """Service for products and their stock counts."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_product(
        self,
        name: str,
        slug: str,
        price_minor: int,
        currency: str,
        stock_qty: int = 0,
        category: Optional[str] = None
    ) -> Product:
        """
        Create a product.

        Args:
            name: Display name
            slug: Unique URL slug
            price_minor: Unit price in minor units
            currency: ISO 4217 code
            stock_qty: Units on hand
            category: Optional category name

        Returns:
            The new product

        Raises:
            InvalidFormat: If currency is not a 3-letter code
            InvalidArgument: If price or stock is negative
            Duplicate: If the slug is taken
        """
        currency = normalize_currency(currency)
        require_non_negative(price_minor, "price_minor")
        require_non_negative(stock_qty, "stock_qty")

        def work(uow: UnitOfWork) -> Product:
            if uow.products.find_by_slug(slug) is not None:
                raise Duplicate(f"Product with slug '{slug}' already exists", slug=slug)
            return uow.products.add(Product(
                name=name,
                slug=slug,
                price_minor=price_minor,
                currency=currency,
                stock_qty=stock_qty,
                category=category
            ))

        product = run_in_transaction(self.session_factory, work, operation="create_product")
        logger.info("Product created", extra={
            "product_id": product.id,
            "slug": slug,
            "price_minor": price_minor,
            "currency": currency,
            "stock_qty": stock_qty
        })
        return product

    def get_product(self, product_id: str) -> Product:
        product = run_in_transaction(
            self.session_factory, lambda uow: uow.products.get(product_id), operation="get_product"
        )
        if product is None:
            raise NotFound(f"Product not found: {product_id}", product_id=product_id)
        return product

    def get_product_by_slug(self, slug: str) -> Product:
        product = run_in_transaction(
            self.session_factory, lambda uow: uow.products.find_by_slug(slug), operation="get_product_by_slug"
        )
        if product is None:
            raise NotFound(f"Product not found: {slug}", slug=slug)
        return product

    def list_products(self, in_stock_only: bool = False) -> List[Product]:
        return run_in_transaction(
            self.session_factory,
            lambda uow: uow.products.list(in_stock_only=in_stock_only),
            operation="list_products"
        )

    def restock(self, product_id: str, qty: int) -> Product:
        """
        Add units to a product's stock.

        Raises:
            InvalidArgument: If qty is not positive
            NotFound: If the product does not exist
        """
        require_positive(qty, "qty")

        def work(uow: UnitOfWork) -> Product:
            product = uow.products.get_for_update(product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}", product_id=product_id)
            return uow.products.apply_stock_delta(product, qty)

        product = run_in_transaction(self.session_factory, work, operation="restock")
        stock_restocks_counter.add(qty, {"product_id": product_id})
        logger.info("Product restocked", extra={
            "product_id": product_id,
            "qty": qty,
            "stock_qty": product.stock_qty
        })
        return product

    def decrease_stock(self, product_id: str, qty: int) -> Product:
        """
        Remove units from a product's stock outside of order placement.

        Raises:
            InvalidArgument: If qty is not positive
            NotFound: If the product does not exist
            InsufficientStock: If fewer than qty units are on hand
        """
        require_positive(qty, "qty")

        def work(uow: UnitOfWork) -> Product:
            product = uow.products.get_for_update(product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}", product_id=product_id)
            if product.stock_qty < qty:
                raise InsufficientStock(product_id, required=qty, available=product.stock_qty)
            return uow.products.apply_stock_delta(product, -qty)

        product = run_in_transaction(self.session_factory, work, operation="decrease_stock")
        logger.info("Product stock decreased", extra={
            "product_id": product_id,
            "qty": qty,
            "stock_qty": product.stock_qty
        })
        return product
