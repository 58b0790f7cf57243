"""Database models for the shop service."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class OrderStatus(str, enum.Enum):
    """Allowed order statuses."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Product(Base):
    """Product model."""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_qty >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price_minor >= 0", name="ck_products_price_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, index=True, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    price_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    stock_qty = Column(Integer, nullable=False, default=0)
    category = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)


class Wallet(Base):
    """Wallet model, one per (owner, currency)."""
    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("owner_id", "currency", name="uq_wallets_owner_currency"),
        CheckConstraint("balance_minor >= 0", name="ck_wallets_balance_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, index=True, nullable=False)
    currency = Column(String(3), nullable=False)
    balance_minor = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Cart(Base):
    """Cart model, one per owner."""
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
        lazy="selectin",
    )


class CartItem(Base):
    """Cart item model."""
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    qty = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product", lazy="joined")


class Order(Base):
    """Order model."""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, index=True, nullable=False)
    total_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OrderItem(Base):
    """Order line snapshot; price and currency are frozen at placement."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    qty = Column(Integer, nullable=False)
    unit_price_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    order = relationship("Order", back_populates="items")
