import threading

import pytest

from errors import (
    ConcurrentModification,
    Conflict,
    Duplicate,
    InsufficientBalance,
    InvalidArgument,
    InvalidFormat,
    NotFound,
)
from repositories.wallet_repository import WalletRepository


class TestCreateWallet:
    def test_create_wallet(self, ledger):
        wallet = ledger.create_wallet("alice", "USD", 1000)

        assert wallet.id
        assert wallet.owner_id == "alice"
        assert wallet.currency == "USD"
        assert wallet.balance_minor == 1000

    def test_currency_is_normalized(self, ledger):
        wallet = ledger.create_wallet("alice", "eur")

        assert wallet.currency == "EUR"
        assert wallet.balance_minor == 0

    def test_invalid_currency(self, ledger):
        with pytest.raises(InvalidFormat):
            ledger.create_wallet("alice", "US")
        with pytest.raises(InvalidFormat):
            ledger.create_wallet("alice", "U5D")

    def test_negative_initial_balance(self, ledger):
        with pytest.raises(InvalidArgument):
            ledger.create_wallet("alice", "USD", -1)

    def test_one_wallet_per_owner_and_currency(self, ledger):
        ledger.create_wallet("alice", "USD")

        with pytest.raises(Duplicate) as exc:
            ledger.create_wallet("alice", "usd")
        assert exc.value.message == "Wallet already exists for user alice and currency USD"

        # Another currency or another owner is fine
        ledger.create_wallet("alice", "EUR")
        ledger.create_wallet("bob", "USD")


class TestIncreaseAndDecrease:
    def test_increase(self, ledger):
        ledger.create_wallet("alice", "USD", 100)

        wallet = ledger.increase_balance("alice", "USD", 250)

        assert wallet.balance_minor == 350
        assert ledger.get_balance("alice", "USD") == 350

    def test_increase_missing_wallet(self, ledger):
        with pytest.raises(NotFound):
            ledger.increase_balance("alice", "USD", 100)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_amount_must_be_positive(self, ledger, amount):
        ledger.create_wallet("alice", "USD", 100)

        with pytest.raises(InvalidArgument):
            ledger.increase_balance("alice", "USD", amount)
        with pytest.raises(InvalidArgument):
            ledger.decrease_balance("alice", "USD", amount)
        assert ledger.get_balance("alice", "USD") == 100

    def test_decrease(self, ledger):
        ledger.create_wallet("alice", "USD", 100)

        wallet = ledger.decrease_balance("alice", "USD", 100)

        assert wallet.balance_minor == 0

    def test_decrease_below_zero(self, ledger):
        wallet = ledger.create_wallet("alice", "USD", 100)

        with pytest.raises(InsufficientBalance) as exc:
            ledger.decrease_balance("alice", "USD", 101)

        assert exc.value.wallet_id == wallet.id
        assert exc.value.required == 101
        assert exc.value.available == 100
        assert ledger.get_balance("alice", "USD") == 100


class TestTransfer:
    def test_transfer(self, ledger):
        ledger.create_wallet("alice", "USD", 1000)
        ledger.create_wallet("bob", "USD", 50)

        ledger.transfer("alice", "bob", "USD", 300)

        assert ledger.get_balance("alice", "USD") == 700
        assert ledger.get_balance("bob", "USD") == 350

    def test_transfer_to_self(self, ledger):
        ledger.create_wallet("alice", "USD", 1000)

        with pytest.raises(InvalidArgument) as exc:
            ledger.transfer("alice", "alice", "USD", 10)
        assert exc.value.message == "Cannot transfer to the same user"

    def test_transfer_without_target_wallet(self, ledger):
        ledger.create_wallet("alice", "USD", 1000)
        ledger.create_wallet("bob", "EUR", 0)

        with pytest.raises(NotFound):
            ledger.transfer("alice", "bob", "USD", 10)
        assert ledger.get_balance("alice", "USD") == 1000

    def test_insufficient_funds_moves_nothing(self, ledger):
        ledger.create_wallet("alice", "USD", 100)
        ledger.create_wallet("bob", "USD", 0)

        with pytest.raises(InsufficientBalance):
            ledger.transfer("alice", "bob", "USD", 101)

        assert ledger.get_balance("alice", "USD") == 100
        assert ledger.get_balance("bob", "USD") == 0


class TestDeleteWallet:
    def test_delete_empty_wallet(self, ledger):
        wallet = ledger.create_wallet("alice", "USD")

        ledger.delete_wallet(wallet.id)

        assert ledger.get_wallet(wallet.id) is None
        assert ledger.get_balance("alice", "USD") == 0

    def test_delete_wallet_with_balance(self, ledger):
        wallet = ledger.create_wallet("alice", "USD", 1)

        with pytest.raises(Conflict) as exc:
            ledger.delete_wallet(wallet.id)

        assert exc.value.message == "Cannot delete wallet with positive balance"
        assert ledger.get_wallet(wallet.id) is not None

    def test_delete_missing_wallet(self, ledger):
        with pytest.raises(NotFound):
            ledger.delete_wallet("no-such-wallet")


class TestQueries:
    def test_balance_of_missing_wallet_is_zero(self, ledger):
        assert ledger.get_balance("nobody", "USD") == 0

    def test_list_wallets(self, ledger):
        ledger.create_wallet("alice", "USD", 1)
        ledger.create_wallet("alice", "EUR", 2)
        ledger.create_wallet("bob", "USD", 3)

        wallets = ledger.list_wallets("alice")

        assert [w.currency for w in wallets] == ["EUR", "USD"]

    def test_find_wallet(self, ledger):
        created = ledger.create_wallet("alice", "USD")

        assert ledger.find_wallet("alice", "usd").id == created.id
        assert ledger.find_wallet("alice", "EUR") is None


class TestConcurrency:
    def test_concurrent_decreases_never_overdraw(self, ledger):
        ledger.create_wallet("alice", "USD", 100)
        barrier = threading.Barrier(8)
        outcomes = []
        lock = threading.Lock()

        def spend():
            barrier.wait()
            try:
                ledger.decrease_balance("alice", "USD", 30)
                result = "ok"
            except InsufficientBalance:
                result = "insufficient"
            except ConcurrentModification:
                result = "conflict"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=spend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Every rejection is a clean domain error, and exactly three debits of 30 fit into 100
        assert len(outcomes) == 8
        assert outcomes.count("ok") == 3
        assert ledger.get_balance("alice", "USD") == 10

    def test_stale_read_is_rechecked(self, ledger, monkeypatch):
        ledger.create_wallet("alice", "USD", 100)
        original = WalletRepository.find_for_update
        interfered = []

        def racing_find_for_update(self, owner_id, currency):
            wallet = original(self, owner_id, currency)
            if not interfered:
                interfered.append(True)
                # Another transaction commits between our read and our write
                ledger.decrease_balance("alice", "USD", 70)
            return wallet

        monkeypatch.setattr(WalletRepository, "find_for_update", racing_find_for_update)

        with pytest.raises(InsufficientBalance) as exc:
            ledger.decrease_balance("alice", "USD", 60)

        assert exc.value.available == 30
        assert ledger.get_balance("alice", "USD") == 30

    def test_concurrent_transfers_conserve_money(self, ledger):
        ledger.create_wallet("alice", "USD", 1000)
        ledger.create_wallet("bob", "USD", 1000)
        barrier = threading.Barrier(10)

        def move(source, target):
            barrier.wait()
            for _ in range(5):
                try:
                    ledger.transfer(source, target, "USD", 37)
                except (InsufficientBalance, ConcurrentModification):
                    pass

        threads = [
            threading.Thread(target=move, args=("alice", "bob") if i % 2 else ("bob", "alice"))
            for i in range(10)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        alice = ledger.get_balance("alice", "USD")
        bob = ledger.get_balance("bob", "USD")
        assert alice + bob == 2000
        assert alice >= 0 and bob >= 0

    def test_transfer_target_deleted_before_lock(self, ledger, monkeypatch):
        ledger.create_wallet("alice", "USD", 100)
        bob = ledger.create_wallet("bob", "USD", 0)
        original = WalletRepository.get_for_update
        interfered = []

        def racing_get_for_update(self, wallet_id):
            if not interfered:
                interfered.append(True)
                # The empty target wallet is deleted between lookup and lock
                ledger.delete_wallet(bob.id)
            return original(self, wallet_id)

        monkeypatch.setattr(WalletRepository, "get_for_update", racing_get_for_update)

        with pytest.raises(NotFound) as exc:
            ledger.transfer("alice", "bob", "USD", 10)

        assert exc.value.details == {"owner_id": "bob", "currency": "USD"}
        assert ledger.get_balance("alice", "USD") == 100
        assert ledger.get_wallet(bob.id) is None
