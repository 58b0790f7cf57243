"""Product persistence and guarded stock writes."""
from typing import Dict, Iterable, List, Optional

from opentelemetry import trace
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from errors import ConcurrentModification
from models import Product

tracer = trace.get_tracer(__name__)


class ProductRepository:
    """Reads and guarded writes against the products table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, product_id: str) -> Optional[Product]:
        with tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)
            product = self.session.get(Product, product_id)
            db_span.set_attribute("db.rows_returned", 1 if product else 0)
            return product

    def get_for_update(self, product_id: str) -> Optional[Product]:
        """Load a product and hold its row lock until the transaction ends."""
        with tracer.start_as_current_span("db.query.lock_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)
            stmt = (
                select(Product)
                .where(Product.id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self.session.execute(stmt).scalar_one_or_none()

    def lock_many(self, product_ids: Iterable[str]) -> Dict[str, Optional[Product]]:
        """Lock several products one by one in ascending id order."""
        return {product_id: self.get_for_update(product_id) for product_id in sorted(set(product_ids))}

    def find_by_slug(self, slug: str) -> Optional[Product]:
        with tracer.start_as_current_span("db.query.get_product_by_slug") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.slug", slug)
            return self.session.execute(
                select(Product).where(Product.slug == slug)
            ).scalar_one_or_none()

    def list(self, in_stock_only: bool = False) -> List[Product]:
        with tracer.start_as_current_span("db.query.list_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            stmt = select(Product).order_by(Product.name)
            if in_stock_only:
                stmt = stmt.where(Product.stock_qty > 0)
            products = list(self.session.execute(stmt).scalars())
            db_span.set_attribute("db.rows_returned", len(products))
            return products

    def add(self, product: Product) -> Product:
        with tracer.start_as_current_span("db.query.insert_product") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "products")
            self.session.add(product)
            self.session.flush()
            db_span.set_attribute("product.id", product.id)
            return product

    def apply_stock_delta(self, product: Product, delta: int) -> Product:
        """
        Add ``delta`` to the stock count in a single guarded statement.

        Raises:
            ConcurrentModification: If the stock would go negative
        """
        with tracer.start_as_current_span("db.query.update_product_stock") as update_span:
            update_span.set_attribute("db.operation", "UPDATE")
            update_span.set_attribute("db.table", "products")
            update_span.set_attribute("product.id", product.id)
            update_span.set_attribute("product.stock.before", product.stock_qty)

            stmt = (
                update(Product)
                .where(Product.id == product.id, Product.stock_qty + delta >= 0)
                .values(stock_qty=Product.stock_qty + delta)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            update_span.set_attribute("db.rows_affected", result.rowcount)
            if result.rowcount != 1:
                raise ConcurrentModification(
                    f"Stock of product {product.id} changed while updating it",
                    product_id=product.id
                )

            self.session.refresh(product)
            update_span.set_attribute("product.stock.after", product.stock_qty)
            return product
