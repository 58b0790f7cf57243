"""Order persistence."""
from typing import List, Optional

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Order, OrderItem

tracer = trace.get_tracer(__name__)


class OrderRepository:
    """Orders and their immutable line items."""

    def __init__(self, session: Session):
        self.session = session

    def save(self, order: Order, items: List[OrderItem]) -> Order:
        with tracer.start_as_current_span("db.query.insert_order") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", order.owner_id)
            db_span.set_attribute("order.total_minor", order.total_minor)

            order.items = items
            self.session.add(order)
            self.session.flush()
            db_span.set_attribute("order.id", order.id)
            db_span.set_attribute("order.item_count", len(items))
            return order

    def get(self, order_id: str) -> Optional[Order]:
        with tracer.start_as_current_span("db.query.get_order") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("order.id", order_id)
            return self.session.get(Order, order_id)

    def list_for_owner(self, owner_id: str) -> List[Order]:
        with tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", owner_id)
            orders = list(self.session.execute(
                select(Order)
                .where(Order.owner_id == owner_id)
                .order_by(Order.created_at.desc())
            ).scalars())
            db_span.set_attribute("db.rows_returned", len(orders))
            return orders

    def set_status(self, order: Order, status: str) -> Order:
        with tracer.start_as_current_span("db.query.update_order_status") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("order.id", order.id)
            db_span.set_attribute("order.status", status)
            order.status = status
            self.session.flush()
            return order
