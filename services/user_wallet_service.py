"""Self-service wallet operations with ownership checks."""
import logging

from errors import Forbidden, InvalidArgument, InvalidState, NotFound
from models import Wallet
from services.ledger_service import LedgerService
from validation import normalize_currency

logger = logging.getLogger(__name__)


class UserWalletService:
    """Wallet operations a signed-in user performs on their own wallets."""

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    def _owned_wallet(self, user_id: str, wallet_id: str, action: str) -> Wallet:
        wallet = self.ledger.get_wallet(wallet_id)
        if wallet is None:
            raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
        if wallet.owner_id != user_id:
            logger.warning("Wallet ownership check failed", extra={
                "user_id": user_id,
                "wallet_id": wallet_id,
                "action": action
            })
            raise Forbidden(f"You can only {action} your own wallets", wallet_id=wallet_id)
        return wallet

    def increase_own_wallet(self, user_id: str, wallet_id: str, amount_minor: int) -> Wallet:
        """
        Top up one of the caller's wallets.

        Raises:
            NotFound: If the wallet does not exist
            Forbidden: If the wallet belongs to another user
        """
        wallet = self._owned_wallet(user_id, wallet_id, "modify")
        return self.ledger.increase_balance(user_id, wallet.currency, amount_minor)

    def delete_own_wallet(self, user_id: str, wallet_id: str) -> None:
        self._owned_wallet(user_id, wallet_id, "delete")
        self.ledger.delete_wallet(wallet_id)

    def transfer_to_wallet(self, user_id: str, to_wallet_id: str, currency: str, amount_minor: int) -> None:
        """
        Send funds from the caller's wallet in ``currency`` to another wallet.

        Raises:
            NotFound: If the caller has no wallet in that currency or the target is missing
            InvalidState: If the target wallet holds a different currency
            InvalidArgument: If the target wallet is the caller's own
        """
        currency = normalize_currency(currency)

        if self.ledger.find_wallet(user_id, currency) is None:
            raise NotFound(f"You don't have a wallet with currency {currency}", currency=currency)

        target = self.ledger.get_wallet(to_wallet_id)
        if target is None:
            raise NotFound("Target wallet not found", wallet_id=to_wallet_id)
        if target.currency != currency:
            raise InvalidState(
                "Target wallet must have the same currency",
                wallet_id=to_wallet_id,
                currency=target.currency,
                expected_currency=currency
            )
        if target.owner_id == user_id:
            raise InvalidArgument("Cannot transfer to your own wallet", wallet_id=to_wallet_id)

        self.ledger.transfer(user_id, target.owner_id, currency, amount_minor)
