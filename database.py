"""Database engine and session factory construction."""
import logging
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import (
    DATABASE_URL,
    DB_ISOLATION_LEVEL,
    DB_MAX_OVERFLOW,
    DB_POOL_SIZE,
    DB_STATEMENT_TIMEOUT_MS,
)
from models import Base, Product

logger = logging.getLogger(__name__)


def create_db_engine(url: str = DATABASE_URL) -> Engine:
    """
    Create the SQLAlchemy engine.

    SQLite (tests, local runs) gets a long busy timeout so concurrent writers
    wait for each other instead of failing; server databases get a sized pool.

    Args:
        url: Database URL

    Returns:
        Engine instance
    """
    kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs.update(
            pool_size=DB_POOL_SIZE,  # Moderate pool size for 50 concurrent users
            max_overflow=DB_MAX_OVERFLOW,  # Burst traffic
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_timeout=30,  # Wait max 30 seconds for a connection
            isolation_level=DB_ISOLATION_LEVEL,
            # A stuck lock wait or query aborts and rolls the transaction back
            connect_args={"options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"},
        )
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory every unit of work draws from."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine, seed: bool = True) -> None:
    """Create tables and optionally seed the catalog."""
    Base.metadata.create_all(bind=engine)

    if not seed:
        return

    session: Session = create_session_factory(engine)()
    try:
        if session.query(Product).count() == 0:
            products = [
                Product(name="Laptop", slug="laptop", price_minor=99999, currency="USD", stock_qty=50, category="Electronics"),
                Product(name="Smartphone", slug="smartphone", price_minor=59999, currency="USD", stock_qty=100, category="Electronics"),
                Product(name="Headphones", slug="headphones", price_minor=9999, currency="USD", stock_qty=200, category="Electronics"),
                Product(name="Desk Chair", slug="desk-chair", price_minor=19999, currency="USD", stock_qty=30, category="Furniture"),
                Product(name="Monitor", slug="monitor", price_minor=29999, currency="USD", stock_qty=75, category="Electronics"),
                Product(name="Keyboard", slug="keyboard", price_minor=7999, currency="EUR", stock_qty=150, category="Electronics"),
                Product(name="Mouse", slug="mouse", price_minor=2999, currency="EUR", stock_qty=300, category="Electronics"),
                Product(name="Webcam", slug="webcam", price_minor=8999, currency="EUR", stock_qty=100, category="Electronics"),
            ]
            session.add_all(products)
            session.commit()
            logger.info("Seeded database with sample products", extra={"count": len(products)})
    finally:
        session.close()
