"""Wallet ledger service.

Balances live in minor units per (owner, currency). Every balance change goes
through ``debit`` or ``credit``, which run inside a caller-supplied unit of
work; the public operations below open their own transaction around them.
Transfers and order placement reuse the same two primitives so the
non-negative check exists in exactly one place.
"""
import logging
from typing import Callable, List, Optional, TypeVar

from opentelemetry import trace
from sqlalchemy.orm import sessionmaker

from errors import (
    Conflict,
    Duplicate,
    InsufficientBalance,
    InvalidArgument,
    NotFound,
    ShopError,
)
from models import Wallet
from monitoring import wallet_amount_histogram, wallet_operations_counter
from unit_of_work import UnitOfWork, run_in_transaction
from validation import normalize_currency, require_non_negative, require_positive

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerService:
    """Service for wallet balances."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize ledger service.

        Args:
            session_factory: Session factory every transaction is opened from
        """
        self.session_factory = session_factory
        self.tracer = trace.get_tracer(__name__)

    # Primitives, composable inside another service's unit of work

    def debit(self, uow: UnitOfWork, wallet: Wallet, amount_minor: int) -> Wallet:
        """
        Take ``amount_minor`` out of a wallet the caller has locked.

        Args:
            uow: Open unit of work the wallet was loaded through
            wallet: Locked wallet
            amount_minor: Positive amount in minor units

        Returns:
            The wallet with its refreshed balance

        Raises:
            InsufficientBalance: If the wallet holds less than the amount
            ConcurrentModification: If the row changed since it was read
        """
        if wallet.balance_minor < amount_minor:
            raise InsufficientBalance(wallet.id, required=amount_minor, available=wallet.balance_minor)
        return uow.wallets.apply_delta(wallet, -amount_minor)

    def credit(self, uow: UnitOfWork, wallet: Wallet, amount_minor: int) -> Wallet:
        """Add ``amount_minor`` to a wallet the caller has locked."""
        return uow.wallets.apply_delta(wallet, amount_minor)

    # Public operations

    def create_wallet(self, owner_id: str, currency: str, initial_balance: int = 0) -> Wallet:
        """
        Open a wallet for an owner in a currency.

        Args:
            owner_id: Owner identifier
            currency: ISO 4217 code
            initial_balance: Opening balance in minor units

        Returns:
            The new wallet

        Raises:
            InvalidFormat: If currency is not a 3-letter code
            InvalidArgument: If initial_balance is negative
            Duplicate: If the owner already has a wallet in that currency
        """
        currency = normalize_currency(currency)
        require_non_negative(initial_balance, "initial_balance")

        def work(uow: UnitOfWork) -> Wallet:
            if uow.wallets.find(owner_id, currency) is not None:
                raise Duplicate(
                    f"Wallet already exists for user {owner_id} and currency {currency}",
                    owner_id=owner_id,
                    currency=currency
                )
            return uow.wallets.add(
                Wallet(owner_id=owner_id, currency=currency, balance_minor=initial_balance)
            )

        wallet = self._run("create_wallet", work, owner_id=owner_id, currency=currency)
        logger.info("Wallet created", extra={
            "wallet_id": wallet.id,
            "user_id": owner_id,
            "currency": currency,
            "balance_minor": wallet.balance_minor
        })
        return wallet

    def increase_balance(self, owner_id: str, currency: str, amount_minor: int) -> Wallet:
        """
        Credit the owner's wallet in ``currency``.

        Raises:
            InvalidArgument: If amount_minor is not positive
            NotFound: If the wallet does not exist
        """
        require_positive(amount_minor)
        currency = normalize_currency(currency)

        def work(uow: UnitOfWork) -> Wallet:
            wallet = self._locked_wallet(uow, owner_id, currency)
            return self.credit(uow, wallet, amount_minor)

        wallet = self._run("increase_balance", work, owner_id=owner_id, currency=currency)
        wallet_amount_histogram.record(amount_minor, {"operation": "increase", "currency": currency})
        logger.info("Wallet balance increased", extra={
            "wallet_id": wallet.id,
            "user_id": owner_id,
            "currency": currency,
            "amount_minor": amount_minor,
            "balance_minor": wallet.balance_minor
        })
        return wallet

    def decrease_balance(self, owner_id: str, currency: str, amount_minor: int) -> Wallet:
        """
        Debit the owner's wallet in ``currency``.

        The balance check and the write are one guarded statement under the
        row lock, so two concurrent debits can never both pass the check.

        Raises:
            InvalidArgument: If amount_minor is not positive
            NotFound: If the wallet does not exist
            InsufficientBalance: If the balance is lower than amount_minor
        """
        require_positive(amount_minor)
        currency = normalize_currency(currency)

        def work(uow: UnitOfWork) -> Wallet:
            wallet = self._locked_wallet(uow, owner_id, currency)
            return self.debit(uow, wallet, amount_minor)

        wallet = self._run("decrease_balance", work, owner_id=owner_id, currency=currency)
        wallet_amount_histogram.record(amount_minor, {"operation": "decrease", "currency": currency})
        logger.info("Wallet balance decreased", extra={
            "wallet_id": wallet.id,
            "user_id": owner_id,
            "currency": currency,
            "amount_minor": amount_minor,
            "balance_minor": wallet.balance_minor
        })
        return wallet

    def transfer(self, from_owner_id: str, to_owner_id: str, currency: str, amount_minor: int) -> None:
        """
        Move funds between two owners' wallets in the same currency.

        Both rows are locked in ascending id order so that two transfers
        running in opposite directions cannot deadlock; the debit and the
        credit commit together or not at all.

        Raises:
            InvalidArgument: If amount_minor is not positive or both owners are the same
            NotFound: If either wallet does not exist
            InsufficientBalance: If the source wallet lacks funds
        """
        require_positive(amount_minor)
        if from_owner_id == to_owner_id:
            raise InvalidArgument("Cannot transfer to the same user", owner_id=from_owner_id)
        currency = normalize_currency(currency)

        def missing(owner_id: str) -> NotFound:
            return NotFound(
                f"Wallet not found for user {owner_id} and currency {currency}",
                owner_id=owner_id,
                currency=currency
            )

        def work(uow: UnitOfWork) -> None:
            source = uow.wallets.find(from_owner_id, currency)
            target = uow.wallets.find(to_owner_id, currency)
            if source is None:
                raise missing(from_owner_id)
            if target is None:
                raise missing(to_owner_id)

            locked = {}
            for wallet_id in sorted([source.id, target.id]):
                locked[wallet_id] = uow.wallets.get_for_update(wallet_id)

            # A wallet deleted before its lock was taken comes back as None
            if locked[source.id] is None:
                raise missing(from_owner_id)
            if locked[target.id] is None:
                raise missing(to_owner_id)

            self.debit(uow, locked[source.id], amount_minor)
            self.credit(uow, locked[target.id], amount_minor)

        with self.tracer.start_as_current_span("db.transaction.transfer") as span:
            span.set_attribute("transfer.currency", currency)
            span.set_attribute("transfer.amount_minor", amount_minor)
            self._run("transfer", work, owner_id=from_owner_id, currency=currency)

        wallet_amount_histogram.record(amount_minor, {"operation": "transfer", "currency": currency})
        logger.info("Transfer completed", extra={
            "from_user_id": from_owner_id,
            "to_user_id": to_owner_id,
            "currency": currency,
            "amount_minor": amount_minor
        })

    def delete_wallet(self, wallet_id: str) -> None:
        """
        Delete an empty wallet.

        Raises:
            NotFound: If the wallet does not exist
            Conflict: If the wallet still holds a positive balance
        """
        def work(uow: UnitOfWork) -> Wallet:
            wallet = uow.wallets.get_for_update(wallet_id)
            if wallet is None:
                raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
            if wallet.balance_minor > 0:
                raise Conflict(
                    "Cannot delete wallet with positive balance",
                    wallet_id=wallet_id,
                    balance_minor=wallet.balance_minor
                )
            uow.wallets.delete_if_empty(wallet)
            return wallet

        wallet = self._run("delete_wallet", work, wallet_id=wallet_id)
        logger.info("Wallet deleted", extra={
            "wallet_id": wallet_id,
            "user_id": wallet.owner_id,
            "currency": wallet.currency
        })

    def get_balance(self, owner_id: str, currency: str) -> int:
        """Balance in minor units, 0 when the owner has no such wallet."""
        currency = normalize_currency(currency)

        def work(uow: UnitOfWork) -> int:
            wallet = uow.wallets.find(owner_id, currency)
            return wallet.balance_minor if wallet else 0

        return run_in_transaction(self.session_factory, work, operation="get_balance")

    def get_wallet(self, wallet_id: str) -> Optional[Wallet]:
        return run_in_transaction(
            self.session_factory, lambda uow: uow.wallets.get(wallet_id), operation="get_wallet"
        )

    def find_wallet(self, owner_id: str, currency: str) -> Optional[Wallet]:
        currency = normalize_currency(currency)
        return run_in_transaction(
            self.session_factory,
            lambda uow: uow.wallets.find(owner_id, currency),
            operation="find_wallet"
        )

    def list_wallets(self, owner_id: str) -> List[Wallet]:
        return run_in_transaction(
            self.session_factory, lambda uow: uow.wallets.list_for_owner(owner_id), operation="list_wallets"
        )

    # Helpers

    def _locked_wallet(self, uow: UnitOfWork, owner_id: str, currency: str) -> Wallet:
        wallet = uow.wallets.find_for_update(owner_id, currency)
        if wallet is None:
            raise NotFound(
                f"Wallet not found for user {owner_id} and currency {currency}",
                owner_id=owner_id,
                currency=currency
            )
        return wallet

    def _run(self, operation: str, work: Callable[[UnitOfWork], T], **attributes: str) -> T:
        """Run a ledger transaction and count its outcome."""
        try:
            result = run_in_transaction(self.session_factory, work, operation=operation)
        except ShopError as e:
            wallet_operations_counter.add(1, {"operation": operation, "status": e.code})
            logger.warning("Wallet operation rejected", extra={
                "operation": operation,
                "error_code": e.code,
                "error": e.message,
                **attributes
            })
            raise
        wallet_operations_counter.add(1, {"operation": operation, "status": "success"})
        return result
