"""Unit of work: one session, one transaction, explicit commit.

Services never touch a session directly. They hand a function to
``run_in_transaction`` which opens a ``UnitOfWork``, passes it in, commits
when the function returns and rolls back on any exception. Driver errors are
translated into ``ShopError`` kinds here so nothing SQL-specific leaks out.
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from errors import ConcurrentModification, Duplicate, ShopError, StoreUnavailable
from monitoring import ledger_conflicts_counter
from repositories.cart_repository import CartRepository
from repositories.order_repository import OrderRepository
from repositories.product_repository import ProductRepository
from repositories.wallet_repository import WalletRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL: serialization_failure, deadlock_detected
RETRYABLE_PGCODES = {"40001", "40P01"}
UNIQUE_VIOLATION_PGCODE = "23505"


def _pgcode_from(exc: DBAPIError) -> Optional[str]:
    return getattr(exc.orig, "pgcode", None)


def is_retryable(exc: DBAPIError) -> bool:
    """Whether the database rejected the transaction because of a concurrent one."""
    if _pgcode_from(exc) in RETRYABLE_PGCODES:
        return True
    msg = str(exc.orig).lower()
    return any(k in msg for k in ("deadlock detected", "could not serialize access", "database is locked"))


def translate_db_error(exc: DBAPIError, operation: str) -> ShopError:
    """Map a driver error onto the domain error taxonomy."""
    if isinstance(exc, IntegrityError):
        msg = str(exc.orig).lower()
        if _pgcode_from(exc) == UNIQUE_VIOLATION_PGCODE or "unique" in msg:
            return Duplicate("Resource already exists", operation=operation)
        # CHECK constraints back up the non-negative balance and stock guards
        return ConcurrentModification(operation=operation)
    if is_retryable(exc):
        return ConcurrentModification(operation=operation)
    return StoreUnavailable(operation=operation)


class UnitOfWork:
    """Transactional boundary exposing the repositories over one session."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.session: Optional[Session] = None

    def __enter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        self.wallets = WalletRepository(self.session)
        self.products = ProductRepository(self.session)
        self.carts = CartRepository(self.session)
        self.orders = OrderRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self.session.close()
            self.session = None

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[UnitOfWork], T],
    operation: str = "transaction",
    attempts: int = 2
) -> T:
    """
    Run ``work`` inside a fresh unit of work and commit it.

    A ``ConcurrentModification`` (lost guarded write, serialization failure,
    deadlock) rolls the transaction back and the whole function runs again
    against fresh rows, up to ``attempts`` times in total.

    Args:
        session_factory: Session factory bound to the engine
        work: Function receiving the unit of work; its return value is returned
        operation: Name used in logs, metrics and translated errors
        attempts: Total number of tries

    Returns:
        Whatever ``work`` returned

    Raises:
        ShopError: Domain errors raised by ``work`` or translated driver errors
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with UnitOfWork(session_factory) as uow:
                result = work(uow)
                uow.commit()
                return result
        except DBAPIError as e:
            error = translate_db_error(e, operation)
            if not isinstance(error, ConcurrentModification) or attempt >= attempts:
                logger.error("Transaction failed", extra={
                    "operation": operation,
                    "attempt": attempt,
                    "error_code": error.code,
                    "error": str(e.orig)
                })
                raise error from e
        except ConcurrentModification:
            if attempt >= attempts:
                raise

        ledger_conflicts_counter.add(1, {"operation": operation})
        logger.warning("Concurrent modification detected, retrying", extra={
            "operation": operation,
            "attempt": attempt
        })
