"""Order management service."""
import logging
from typing import Dict, List

from opentelemetry import trace
from sqlalchemy.orm import sessionmaker

from errors import (
    Forbidden,
    InsufficientBalance,
    InsufficientStock,
    InvalidArgument,
    InvalidState,
    NotFound,
    ShopError,
)
from models import Order, OrderItem, OrderStatus, Product
from monitoring import (
    order_amount_histogram,
    order_failures_counter,
    order_status_changes_counter,
    orders_created_counter,
)
from services.ledger_service import LedgerService
from unit_of_work import UnitOfWork, run_in_transaction

logger = logging.getLogger(__name__)

ORDER_STATUSES = {status.value for status in OrderStatus}


class OrderService:
    """Service for placing and tracking orders."""

    def __init__(self, session_factory: sessionmaker, ledger: LedgerService):
        """
        Initialize order service.

        Args:
            session_factory: Session factory every transaction is opened from
            ledger: Ledger whose debit primitive pays for the order
        """
        self.session_factory = session_factory
        self.ledger = ledger
        self.tracer = trace.get_tracer(__name__)

    def create_order_from_cart(self, user_id: str, wallet_id: str) -> Order:
        """
        Turn the user's cart into a confirmed order paid from one wallet.

        Everything happens in one transaction: stock is decremented for every
        line, the wallet is debited for the total, the order is written with
        each line's current price and the ordered lines come off
        the cart. Any failure leaves stock, balance, cart and orders exactly
        as they were.

        Args:
            user_id: User placing the order
            wallet_id: Wallet paying for it; must belong to the user

        Returns:
            The confirmed order with its items

        Raises:
            InvalidState: If the cart is empty or a product's currency differs from the wallet's
            NotFound: If the wallet or one of the cart's products does not exist
            Forbidden: If the wallet belongs to another user
            InsufficientStock: If a line asks for more units than are on hand
            InsufficientBalance: If the wallet cannot cover the total
        """
        span = trace.get_current_span()
        span.set_attribute("user.id", user_id)
        span.set_attribute("wallet.id", wallet_id)

        def work(uow: UnitOfWork) -> Order:
            cart = uow.carts.find(user_id)
            if cart is None or not cart.items:
                raise InvalidState("Cart is empty", user_id=user_id)
            lines = [(item.product_id, item.qty) for item in cart.items]
            ordered = {item.id: item.qty for item in cart.items}

            wallet = uow.wallets.get_for_update(wallet_id)
            if wallet is None:
                raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
            if wallet.owner_id != user_id:
                raise Forbidden("You can only pay with your own wallets", wallet_id=wallet_id)

            products = uow.products.lock_many(product_id for product_id, _ in lines)
            self._check_lines(lines, products, wallet.currency)

            total_minor = sum(products[product_id].price_minor * qty for product_id, qty in lines)
            if wallet.balance_minor < total_minor:
                raise InsufficientBalance(wallet.id, required=total_minor, available=wallet.balance_minor)

            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("user.id", user_id)
                db_span.set_attribute("order.total_minor", total_minor)
                db_span.set_attribute("order.currency", wallet.currency)

                for product_id, qty in lines:
                    uow.products.apply_stock_delta(products[product_id], -qty)
                self.ledger.debit(uow, wallet, total_minor)

                order = uow.orders.save(
                    Order(
                        owner_id=user_id,
                        total_minor=total_minor,
                        currency=wallet.currency,
                        status=OrderStatus.CONFIRMED.value
                    ),
                    [
                        OrderItem(
                            product_id=product_id,
                            qty=qty,
                            unit_price_minor=products[product_id].price_minor,
                            currency=products[product_id].currency
                        )
                        for product_id, qty in lines
                    ]
                )
                uow.carts.remove_ordered(cart.id, ordered)
                db_span.set_attribute("order.id", order.id)
                return order

        try:
            order = run_in_transaction(self.session_factory, work, operation="create_order")
        except ShopError as e:
            order_failures_counter.add(1, {"reason": e.code})
            logger.warning("Order placement rejected", extra={
                "user_id": user_id,
                "wallet_id": wallet_id,
                "error_code": e.code,
                "error": e.message
            })
            raise

        orders_created_counter.add(1, {"currency": order.currency})
        order_amount_histogram.record(order.total_minor, {"currency": order.currency})
        logger.info("Order placed", extra={
            "user_id": user_id,
            "order_id": order.id,
            "wallet_id": wallet_id,
            "total_minor": order.total_minor,
            "currency": order.currency,
            "item_count": len(order.items)
        })
        return order

    def _check_lines(self, lines: List[tuple], products: Dict[str, Product], currency: str) -> None:
        for product_id, _ in lines:
            product = products.get(product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}", product_id=product_id)
            if product.currency != currency:
                raise InvalidState(
                    f"Product {product_id} is priced in {product.currency}, wallet holds {currency}",
                    product_id=product_id,
                    currency=product.currency,
                    wallet_currency=currency
                )

        for product_id, qty in lines:
            product = products[product_id]
            if product.stock_qty < qty:
                raise InsufficientStock(product_id, required=qty, available=product.stock_qty)

    def get_user_orders(self, user_id: str) -> List[Order]:
        """Orders placed by a user, newest first."""
        return run_in_transaction(
            self.session_factory, lambda uow: uow.orders.list_for_owner(user_id), operation="get_user_orders"
        )

    def get_order_by_id(self, order_id: str) -> Order:
        order = run_in_transaction(
            self.session_factory, lambda uow: uow.orders.get(order_id), operation="get_order"
        )
        if order is None:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        return order

    def get_order(self, user_id: str, order_id: str) -> Order:
        """
        Get one of the user's orders.

        Raises:
            NotFound: If the order does not exist
            Forbidden: If the order belongs to another user
        """
        order = self.get_order_by_id(order_id)
        if order.owner_id != user_id:
            raise Forbidden("You can only view your own orders", order_id=order_id)
        return order

    def update_status(self, order_id: str, status: str) -> Order:
        """
        Move an order to another status.

        Raises:
            InvalidArgument: If status is not one of the known order statuses
            NotFound: If the order does not exist
        """
        if status not in ORDER_STATUSES:
            raise InvalidArgument(
                f"Invalid status. Must be one of: {', '.join(sorted(ORDER_STATUSES))}",
                status=status
            )

        def work(uow: UnitOfWork) -> tuple:
            order = uow.orders.get(order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found", order_id=order_id)
            previous = order.status
            return uow.orders.set_status(order, status), previous

        order, previous = run_in_transaction(self.session_factory, work, operation="update_order_status")
        order_status_changes_counter.add(1, {"from": previous, "to": status})
        logger.info("Order status updated", extra={
            "order_id": order_id,
            "user_id": order.owner_id,
            "previous_status": previous,
            "status": status
        })
        return order
