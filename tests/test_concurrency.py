"""
Concurrency tests: no lost updates, no overdraft races, bounded lock waits
"""

import pytest
import threading
from decimal import Decimal

from nivalus_core.config import NivalusConfig
from nivalus_core.errors import BelowMinimumBalanceError, ContentionError, InsufficientFundsError
from nivalus_core.file_storage import InMemoryFileStorage
from nivalus_core.locks import AccountLockManager
from nivalus_core.storage import SQLiteStorage
from nivalus_core.system import BankingCore

from support import BankFixture


def run_concurrently(count, target):
    """Start ``count`` threads together and collect results or errors"""
    barrier = threading.Barrier(count)
    results = []
    errors = []
    guard = threading.Lock()

    def worker():
        barrier.wait()
        try:
            outcome = target()
        except Exception as e:
            with guard:
                errors.append(e)
        else:
            with guard:
                results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


class TestConcurrentDeposits(BankFixture):

    def setup_method(self):
        self.build()

    def test_no_lost_updates(self):
        n = 25
        results, errors = run_concurrently(
            n, lambda: self.engine.apply_transaction(self.account.id, "Deposit", "4.00")
        )

        assert errors == []
        assert len(results) == n
        assert self.balance() == Decimal("100.00") + n * Decimal("4.00")
        assert len(self.ledger.list_by_account(self.account.id)) == n

    def test_independent_accounts(self):
        others = [
            self.accounts.create(f"User {i}", f"user{i}", f"user{i}@example.com", "pw", "0000", balance=Decimal("0.00"))
            for i in range(3)
        ]
        targets = [a.id for a in others] * 5
        position = iter(range(len(targets)))
        position_lock = threading.Lock()

        def deposit():
            with position_lock:
                account_id = targets[next(position)]
            return self.engine.apply_transaction(account_id, "Deposit", "1.00")

        results, errors = run_concurrently(len(targets), deposit)

        assert errors == []
        for account in others:
            assert self.accounts.require(account.id).balance == Decimal("5.00")


class TestConcurrentWithdrawals(BankFixture):

    def setup_method(self):
        self.build(balance="100.00")
        self.settings.update({"minimum_balance": "0.00"})

    def test_balance_never_overdrawn(self):
        results, errors = run_concurrently(
            10, lambda: self.engine.apply_transaction(self.account.id, "Withdrawal", "20.00")
        )

        assert len(results) == 5
        assert len(errors) == 5
        assert all(isinstance(e, (InsufficientFundsError, BelowMinimumBalanceError)) for e in errors)
        assert self.balance() == Decimal("0.00")

    def test_concurrent_reversal_only_once(self):
        txn = self.engine.apply_transaction(self.account.id, "Withdrawal", "30.00")

        results, errors = run_concurrently(6, lambda: self.reversal.reverse_transaction(txn.id))

        assert len(results) == 1
        assert len(errors) == 5
        assert self.balance() == Decimal("100.00")


class TestSQLiteConcurrency(BankFixture):

    def setup_method(self):
        self.build(storage=SQLiteStorage(":memory:"))

    def teardown_method(self):
        self.storage.close()

    def test_no_lost_updates(self):
        n = 12
        results, errors = run_concurrently(
            n, lambda: self.engine.apply_transaction(self.account.id, "Deposit", "2.50")
        )

        assert errors == []
        assert self.balance() == Decimal("130.00")
        assert self.ledger.count() == n


class TestLockContention(BankFixture):

    def setup_method(self):
        self.build()
        self.engine.lock_manager = AccountLockManager(timeout_seconds=0.05)
        self.reversal.lock_manager = self.engine.lock_manager

    def test_bounded_wait_raises_contention(self):
        with self.engine.lock_manager.hold(self.account.id):
            with pytest.raises(ContentionError):
                self.engine.apply_transaction(self.account.id, "Deposit", "5.00")

        assert self.balance() == Decimal("100.00")
        self.engine.apply_transaction(self.account.id, "Deposit", "5.00")
        assert self.balance() == Decimal("105.00")

    def test_lock_manager_rejects_bad_timeout(self):
        with pytest.raises(ValueError):
            AccountLockManager(timeout_seconds=0)

    def test_forget_drops_idle_lock(self):
        manager = AccountLockManager(timeout_seconds=0.05)
        with manager.hold("a"):
            manager.forget("a")
            assert len(manager) == 1
        manager.forget("a")
        assert len(manager) == 0


class TestProfileWritesDuringDeposit:
    """Login stamps and avatar changes must not write back a stale balance"""

    def setup_method(self):
        config = NivalusConfig(database_url="memory://", default_minimum_balance="0.00")
        self.core = BankingCore(config, file_storage=InMemoryFileStorage())
        self.account = self.core.create_account(
            "Jane Doe", "jane", "jane@example.com", "password123", "1234", balance="100.00"
        )
        self.workers = []

    def _deposit_during_next_save(self):
        """Start a deposit from another thread just before the next account save"""
        accounts = self.core.accounts
        original_save = accounts._save

        def save(account):
            if not self.workers:
                worker = threading.Thread(
                    target=self.core.apply_transaction, args=(self.account.id, "Deposit", "50.00")
                )
                self.workers.append(worker)
                worker.start()
                worker.join(timeout=0.2)
            original_save(account)

        accounts._save = save

    def _final_balance(self):
        for worker in self.workers:
            worker.join(timeout=10)
        assert len(self.workers) == 1
        assert len(self.core.list_transactions(self.account.id)) == 1
        return self.core.get_account(self.account.id).balance

    def test_login_keeps_concurrent_deposit(self):
        self._deposit_during_next_save()
        self.core.authenticate("jane", "password123")
        assert self._final_balance() == Decimal("150.00")

    def test_avatar_upload_keeps_concurrent_deposit(self):
        self._deposit_during_next_save()
        self.core.set_avatar(self.account.id, b"png", "me.png")
        assert self._final_balance() == Decimal("150.00")

    def test_avatar_removal_keeps_concurrent_deposit(self):
        self.core.set_avatar(self.account.id, b"png", "me.png")
        self._deposit_during_next_save()
        self.core.remove_avatar(self.account.id)
        assert self._final_balance() == Decimal("150.00")
