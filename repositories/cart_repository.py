"""Cart persistence."""
from typing import Dict, Optional

from opentelemetry import trace
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import ConcurrentModification
from models import Cart, CartItem

tracer = trace.get_tracer(__name__)


class CartRepository:
    """Carts and their line items."""

    def __init__(self, session: Session):
        self.session = session

    def find(self, owner_id: str) -> Optional[Cart]:
        with tracer.start_as_current_span("db.query.get_cart") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "carts")
            db_span.set_attribute("user.id", owner_id)
            cart = self.session.execute(
                select(Cart).where(Cart.owner_id == owner_id)
            ).scalar_one_or_none()
            db_span.set_attribute("db.rows_returned", 1 if cart else 0)
            return cart

    def get_or_create(self, owner_id: str) -> Cart:
        """
        Return the owner's cart, inserting it on first use.

        Raises:
            ConcurrentModification: If another transaction inserted the same
                owner's cart first; the retried unit of work then finds it
        """
        cart = self.find(owner_id)
        if cart is not None:
            return cart

        with tracer.start_as_current_span("db.query.insert_cart") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "carts")
            db_span.set_attribute("user.id", owner_id)
            cart = Cart(owner_id=owner_id, items=[])
            self.session.add(cart)
            try:
                self.session.flush()
            except IntegrityError as e:
                raise ConcurrentModification(
                    f"Cart for user {owner_id} was created concurrently",
                    user_id=owner_id
                ) from e
            return cart

    def add_item(self, cart: Cart, product_id: str, qty: int) -> CartItem:
        """Add ``qty`` of a product, merging into an existing line."""
        for item in cart.items:
            if item.product_id == product_id:
                item.qty += qty
                try:
                    self.session.flush()
                except StaleDataError as e:
                    # The line was removed by an order placed in the meantime
                    raise ConcurrentModification(
                        f"Cart line for product {product_id} changed concurrently",
                        product_id=product_id
                    ) from e
                return item

        with tracer.start_as_current_span("db.query.insert_cart_item") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("product.id", product_id)
            item = CartItem(product_id=product_id, qty=qty)
            cart.items.append(item)
            try:
                self.session.flush()
            except IntegrityError as e:
                raise ConcurrentModification(
                    f"Cart line for product {product_id} was added concurrently",
                    product_id=product_id
                ) from e
            db_span.set_attribute("cart_item.id", item.id)
            return item

    def set_item_quantity(self, cart: Cart, product_id: str, qty: int) -> Optional[CartItem]:
        for item in cart.items:
            if item.product_id == product_id:
                item.qty = qty
                self.session.flush()
                return item
        return None

    def remove_item(self, cart: Cart, product_id: str) -> bool:
        for item in list(cart.items):
            if item.product_id == product_id:
                cart.items.remove(item)
                self.session.flush()
                return True
        return False

    def remove_ordered(self, cart_id: str, ordered: Dict[str, int]) -> int:
        """
        Take ordered quantities off the cart's lines.

        Only the lines that were read for the order are touched, and only by
        the quantity that was ordered, so anything another transaction added
        in the meantime stays in the cart.

        Args:
            cart_id: Cart the order was placed from
            ordered: Ordered quantity per cart item id

        Returns:
            Number of lines deleted
        """
        with tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.id", cart_id)

            for item_id, qty in ordered.items():
                self.session.execute(
                    update(CartItem)
                    .where(CartItem.id == item_id, CartItem.cart_id == cart_id)
                    .values(qty=CartItem.qty - qty)
                    .execution_options(synchronize_session=False)
                )
            result = self.session.execute(
                delete(CartItem)
                .where(CartItem.id.in_(list(ordered)), CartItem.qty <= 0)
                .execution_options(synchronize_session=False)
            )
            db_span.set_attribute("db.rows_affected", result.rowcount)

            cart = self.session.get(Cart, cart_id)
            if cart is not None:
                self.session.expire(cart, ["items"])
            return result.rowcount

    def clear(self, cart_id: str) -> int:
        """Delete every line of the cart; the cart row itself stays."""
        with tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.id", cart_id)

            result = self.session.execute(
                delete(CartItem)
                .where(CartItem.cart_id == cart_id)
                .execution_options(synchronize_session=False)
            )
            db_span.set_attribute("db.rows_affected", result.rowcount)

            cart = self.session.get(Cart, cart_id)
            if cart is not None:
                self.session.expire(cart, ["items"])
            return result.rowcount
