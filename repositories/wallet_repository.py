"""Wallet persistence."""
from datetime import datetime
from typing import List, Optional

from opentelemetry import trace
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from errors import ConcurrentModification
from models import Wallet

tracer = trace.get_tracer(__name__)


class WalletRepository:
    """Reads and guarded writes against the wallets table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, wallet_id: str) -> Optional[Wallet]:
        with tracer.start_as_current_span("db.query.get_wallet") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("wallet.id", wallet_id)
            return self.session.get(Wallet, wallet_id)

    def get_for_update(self, wallet_id: str) -> Optional[Wallet]:
        """Load a wallet by id and hold its row lock until the transaction ends."""
        with tracer.start_as_current_span("db.query.lock_wallet") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("wallet.id", wallet_id)
            stmt = (
                select(Wallet)
                .where(Wallet.id == wallet_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self.session.execute(stmt).scalar_one_or_none()

    def find(self, owner_id: str, currency: str) -> Optional[Wallet]:
        with tracer.start_as_current_span("db.query.find_wallet") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("user.id", owner_id)
            stmt = select(Wallet).where(Wallet.owner_id == owner_id, Wallet.currency == currency)
            return self.session.execute(stmt).scalar_one_or_none()

    def find_for_update(self, owner_id: str, currency: str) -> Optional[Wallet]:
        """Load the (owner, currency) wallet and hold its row lock."""
        with tracer.start_as_current_span("db.query.lock_wallet") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("user.id", owner_id)
            stmt = (
                select(Wallet)
                .where(Wallet.owner_id == owner_id, Wallet.currency == currency)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self.session.execute(stmt).scalar_one_or_none()

    def list_for_owner(self, owner_id: str) -> List[Wallet]:
        with tracer.start_as_current_span("db.query.list_wallets") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("user.id", owner_id)
            stmt = select(Wallet).where(Wallet.owner_id == owner_id).order_by(Wallet.currency)
            wallets = list(self.session.execute(stmt).scalars())
            db_span.set_attribute("db.rows_returned", len(wallets))
            return wallets

    def add(self, wallet: Wallet) -> Wallet:
        with tracer.start_as_current_span("db.query.insert_wallet") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "wallets")
            self.session.add(wallet)
            self.session.flush()
            db_span.set_attribute("wallet.id", wallet.id)
            return wallet

    def apply_delta(self, wallet: Wallet, delta: int) -> Wallet:
        """
        Add ``delta`` to the balance in a single guarded statement.

        The WHERE clause re-checks that the result stays non-negative, so a
        write based on a stale read cannot overdraw the wallet.

        Raises:
            ConcurrentModification: If the guard matched no row
        """
        with tracer.start_as_current_span("db.query.update_wallet_balance") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("wallet.id", wallet.id)
            db_span.set_attribute("wallet.delta_minor", delta)

            stmt = (
                update(Wallet)
                .where(Wallet.id == wallet.id, Wallet.balance_minor + delta >= 0)
                .values(balance_minor=Wallet.balance_minor + delta, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            db_span.set_attribute("db.rows_affected", result.rowcount)
            if result.rowcount != 1:
                raise ConcurrentModification(
                    f"Wallet {wallet.id} changed while updating its balance",
                    wallet_id=wallet.id
                )

            self.session.refresh(wallet)
            db_span.set_attribute("wallet.balance.after", wallet.balance_minor)
            return wallet

    def delete_if_empty(self, wallet: Wallet) -> None:
        """Delete the wallet only while its stored balance is zero."""
        with tracer.start_as_current_span("db.query.delete_wallet") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "wallets")
            db_span.set_attribute("wallet.id", wallet.id)

            stmt = (
                delete(Wallet)
                .where(Wallet.id == wallet.id, Wallet.balance_minor == 0)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            db_span.set_attribute("db.rows_affected", result.rowcount)
            if result.rowcount != 1:
                raise ConcurrentModification(
                    f"Wallet {wallet.id} changed while deleting it",
                    wallet_id=wallet.id
                )
            self.session.expunge(wallet)
