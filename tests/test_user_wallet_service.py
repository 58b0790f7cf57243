import pytest

from errors import Forbidden, InsufficientBalance, InvalidArgument, InvalidState, NotFound


class TestOwnWallets:
    def test_increase_own_wallet(self, user_wallets, ledger):
        wallet = ledger.create_wallet("alice", "USD", 100)

        updated = user_wallets.increase_own_wallet("alice", wallet.id, 900)

        assert updated.balance_minor == 1000

    def test_increase_someone_elses_wallet(self, user_wallets, ledger):
        wallet = ledger.create_wallet("bob", "USD", 100)

        with pytest.raises(Forbidden) as exc:
            user_wallets.increase_own_wallet("alice", wallet.id, 900)

        assert exc.value.message == "You can only modify your own wallets"
        assert ledger.get_balance("bob", "USD") == 100

    def test_delete_own_wallet(self, user_wallets, ledger):
        wallet = ledger.create_wallet("alice", "USD")

        user_wallets.delete_own_wallet("alice", wallet.id)

        assert ledger.get_wallet(wallet.id) is None

    def test_delete_someone_elses_wallet(self, user_wallets, ledger):
        wallet = ledger.create_wallet("bob", "USD")

        with pytest.raises(Forbidden):
            user_wallets.delete_own_wallet("alice", wallet.id)
        with pytest.raises(NotFound):
            user_wallets.delete_own_wallet("alice", "no-such-wallet")


class TestTransferToWallet:
    def test_transfer(self, user_wallets, ledger):
        ledger.create_wallet("alice", "USD", 500)
        target = ledger.create_wallet("bob", "USD", 0)

        user_wallets.transfer_to_wallet("alice", target.id, "usd", 200)

        assert ledger.get_balance("alice", "USD") == 300
        assert ledger.get_balance("bob", "USD") == 200

    def test_caller_has_no_wallet_in_currency(self, user_wallets, ledger):
        target = ledger.create_wallet("bob", "USD", 0)

        with pytest.raises(NotFound):
            user_wallets.transfer_to_wallet("alice", target.id, "USD", 200)

    def test_target_missing(self, user_wallets, ledger):
        ledger.create_wallet("alice", "USD", 500)

        with pytest.raises(NotFound):
            user_wallets.transfer_to_wallet("alice", "no-such-wallet", "USD", 200)

    def test_target_in_other_currency(self, user_wallets, ledger):
        ledger.create_wallet("alice", "USD", 500)
        target = ledger.create_wallet("bob", "EUR", 0)

        with pytest.raises(InvalidState):
            user_wallets.transfer_to_wallet("alice", target.id, "USD", 200)

    def test_target_is_own_wallet(self, user_wallets, ledger):
        own = ledger.create_wallet("alice", "USD", 500)

        with pytest.raises(InvalidArgument):
            user_wallets.transfer_to_wallet("alice", own.id, "USD", 200)

    def test_insufficient_balance(self, user_wallets, ledger):
        ledger.create_wallet("alice", "USD", 100)
        target = ledger.create_wallet("bob", "USD", 0)

        with pytest.raises(InsufficientBalance):
            user_wallets.transfer_to_wallet("alice", target.id, "USD", 200)
        assert ledger.get_balance("bob", "USD") == 0
