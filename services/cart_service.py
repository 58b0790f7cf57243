"""Cart management service."""
import logging
from typing import Any, Dict, Optional

from opentelemetry import trace
from sqlalchemy.orm import sessionmaker

from errors import InvalidArgument, InvalidState, NotFound
from models import Cart
from monitoring import cart_additions_counter
from unit_of_work import UnitOfWork, run_in_transaction
from validation import is_int, require_positive

logger = logging.getLogger(__name__)


def cart_view(owner_id: str, cart: Optional[Cart]) -> Dict[str, Any]:
    """
    Render a cart as a plain dict while its session is still open.

    Args:
        owner_id: Cart owner
        cart: Cart with its items, or None when the user has none yet

    Returns:
        Cart contents with per-line subtotals and the cart total
    """
    items = []
    total = 0
    currency = None

    for item in (cart.items if cart else []):
        product = item.product
        subtotal = product.price_minor * item.qty
        total += subtotal
        currency = product.currency
        items.append({
            "id": item.id,
            "product_id": product.id,
            "product_name": product.name,
            "price_minor": product.price_minor,
            "currency": product.currency,
            "qty": item.qty,
            "subtotal_minor": subtotal
        })

    return {
        "id": cart.id if cart else None,
        "user_id": owner_id,
        "items": items,
        "total_minor": total,
        "currency": currency
    }


class CartService:
    """Service for managing shopping carts."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize cart service.

        Args:
            session_factory: Session factory every transaction is opened from
        """
        self.session_factory = session_factory

    def add_item(self, user_id: str, product_id: str, qty: int) -> Dict[str, Any]:
        """
        Add a product to the user's cart, creating the cart on first use.

        All lines of a cart share one currency: the product being added must
        be priced in the currency of the lines already there.

        Args:
            user_id: User identifier
            product_id: Product identifier
            qty: Quantity to add

        Returns:
            Updated cart view

        Raises:
            InvalidArgument: If qty is not positive
            NotFound: If the product does not exist
            InvalidState: If the product's currency differs from the cart's
        """
        require_positive(qty, "qty")

        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", qty)

        def work(uow: UnitOfWork) -> Dict[str, Any]:
            product = uow.products.get(product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}", product_id=product_id)

            cart = uow.carts.get_or_create(user_id)
            for item in cart.items:
                if item.product.currency != product.currency:
                    raise InvalidState(
                        f"Product currency {product.currency} does not match "
                        f"cart currency {item.product.currency}",
                        product_id=product_id,
                        currency=product.currency,
                        cart_currency=item.product.currency
                    )
                break

            uow.carts.add_item(cart, product_id, qty)
            return cart_view(user_id, cart)

        view = run_in_transaction(self.session_factory, work, operation="add_to_cart")

        cart_additions_counter.add(1, {"product_id": product_id})
        logger.info("Added product to cart", extra={
            "user_id": user_id,
            "product_id": product_id,
            "quantity": qty
        })
        return view

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        """Get the user's cart contents; an empty view when there is no cart yet."""
        return run_in_transaction(
            self.session_factory,
            lambda uow: cart_view(user_id, uow.carts.find(user_id)),
            operation="get_cart"
        )

    def update_item_quantity(self, user_id: str, product_id: str, qty: int) -> Dict[str, Any]:
        """
        Set a line's quantity; zero or less removes the line.

        Raises:
            NotFound: If the user has no cart or the product is not in it
        """
        if not is_int(qty):
            raise InvalidArgument("qty must be an integer", qty=qty)

        def work(uow: UnitOfWork) -> Dict[str, Any]:
            cart = self._existing_cart(uow, user_id)
            if qty <= 0:
                found = uow.carts.remove_item(cart, product_id)
            else:
                found = uow.carts.set_item_quantity(cart, product_id, qty) is not None
            if not found:
                raise NotFound("Item not found in cart", product_id=product_id)
            return cart_view(user_id, cart)

        return run_in_transaction(self.session_factory, work, operation="update_cart_item")

    def remove_item(self, user_id: str, product_id: str) -> Dict[str, Any]:
        """
        Remove a product from the user's cart.

        Raises:
            NotFound: If the user has no cart or the product is not in it
        """
        def work(uow: UnitOfWork) -> Dict[str, Any]:
            cart = self._existing_cart(uow, user_id)
            if not uow.carts.remove_item(cart, product_id):
                raise NotFound("Item not found in cart", product_id=product_id)
            return cart_view(user_id, cart)

        return run_in_transaction(self.session_factory, work, operation="remove_cart_item")

    def clear_cart(self, user_id: str) -> Dict[str, Any]:
        """
        Empty the user's cart. The cart itself is kept.

        Raises:
            NotFound: If the user has no cart
        """
        def work(uow: UnitOfWork) -> Dict[str, Any]:
            cart = self._existing_cart(uow, user_id)
            deleted_count = uow.carts.clear(cart.id)
            logger.info("Cart cleared", extra={"user_id": user_id, "deleted_count": deleted_count})
            return cart_view(user_id, cart)

        return run_in_transaction(self.session_factory, work, operation="clear_cart")

    def _existing_cart(self, uow: UnitOfWork, user_id: str) -> Cart:
        cart = uow.carts.find(user_id)
        if cart is None:
            raise NotFound("Cart not found", user_id=user_id)
        return cart
