"""
test_wallet_service.py — Unit tests for export credits and project unlocks.
"""

import json

import pytest

from app.services.wallet_service import (
    CREDITS_KEY,
    UNLOCKED_KEY,
    InMemoryKeyValueStore,
    InsufficientCreditsError,
    WalletService,
)


@pytest.fixture
def wallet():
    return WalletService(InMemoryKeyValueStore())


class TestCredits:

    def test_starts_empty(self, wallet):
        assert wallet.balance() == 0

    def test_top_up(self, wallet):
        assert wallet.add_credits(3) == 3
        assert wallet.add_credits(2) == 5

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_top_up_rejected(self, wallet, amount):
        with pytest.raises(ValueError):
            wallet.add_credits(amount)

    def test_reads_existing_store(self):
        store = InMemoryKeyValueStore({CREDITS_KEY: "7", UNLOCKED_KEY: json.dumps(["p1"])})
        w = WalletService(store)
        assert w.balance() == 7
        assert w.is_unlocked("p1")


class TestUnlock:

    def test_unlock_spends_one_credit(self, wallet):
        wallet.add_credits(2)
        assert wallet.unlock_project("p1") is True
        assert wallet.balance() == 1
        assert wallet.is_unlocked("p1")

    def test_second_unlock_is_free(self, wallet):
        wallet.add_credits(1)
        wallet.unlock_project("p1")
        assert wallet.unlock_project("p1") is True
        assert wallet.balance() == 0

    def test_no_credits(self, wallet):
        assert wallet.unlock_project("p1") is False
        assert not wallet.is_unlocked("p1")

    def test_require_unlock_raises(self, wallet):
        with pytest.raises(InsufficientCreditsError):
            wallet.require_unlock("p1")

    def test_unlocked_list_persisted_as_json(self, wallet):
        wallet.add_credits(2)
        wallet.unlock_project("a")
        wallet.unlock_project("b")
        assert json.loads(wallet.store.get(UNLOCKED_KEY)) == ["a", "b"]
