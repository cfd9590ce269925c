"""
Tests for the balance mutation engine: policy checks, atomicity, audit
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from nivalus_core.errors import (
    BelowMinimumBalanceError, InactiveAccountError, InsufficientFundsError,
    InvalidValueError, LimitExceededError, NotFoundError
)
from nivalus_core.audit import ActorContext
from nivalus_core.storage import SQLiteStorage
from nivalus_core.transactions import TransactionType

from support import BankFixture, ExplodingAudit, FaultyStorage, SimulatedAbort


class TestPolicyScenarios(BankFixture):

    def setup_method(self):
        self.build()

    def test_withdrawal_below_minimum_rejected(self):
        with pytest.raises(BelowMinimumBalanceError):
            self.engine.apply_transaction(self.account.id, "Withdrawal", "95.00")

        assert self.balance() == Decimal("100.00")
        assert self.ledger.list_by_account(self.account.id) == []

    def test_withdrawal_within_policy_succeeds(self):
        txn = self.engine.apply_transaction(self.account.id, "Withdrawal", "50.00")

        assert self.balance() == Decimal("50.00")
        assert txn.delta == Decimal("-50.00")
        assert txn.balance_after == Decimal("50.00")
        assert self.ledger.get(txn.id) == txn

    def test_deposit_over_max_limit_rejected(self):
        with pytest.raises(LimitExceededError):
            self.engine.apply_transaction(self.account.id, "Deposit", "2000.00")
        assert self.balance() == Decimal("100.00")

    def test_reversal_restores_balance(self):
        txn = self.engine.apply_transaction(self.account.id, "Withdrawal", "50.00")

        self.reversal.reverse_transaction(txn.id)

        assert self.balance() == Decimal("100.00")
        assert self.ledger.get(txn.id) is None

    def test_limit_checked_before_funds(self):
        with pytest.raises(LimitExceededError):
            self.engine.apply_transaction(self.account.id, "Transfer", "1500.00")

    def test_insufficient_funds(self):
        with pytest.raises(InsufficientFundsError):
            self.engine.apply_transaction(self.account.id, "Bill Pay", "150.00")
        assert self.balance() == Decimal("100.00")

    def test_minimum_balance_boundary_allowed(self):
        self.engine.apply_transaction(self.account.id, "Withdrawal", "90.00")
        assert self.balance() == Decimal("10.00")

    def test_deposit_ignores_minimum_balance(self):
        self.settings.update({"minimum_balance": "500.00"})
        self.engine.apply_transaction(self.account.id, TransactionType.DEPOSIT, "1.00")
        assert self.balance() == Decimal("101.00")

    def test_transaction_fee_not_charged(self):
        self.engine.apply_transaction(self.account.id, "Deposit", "20.00")
        assert self.balance() == Decimal("120.00")

    def test_daily_limit(self):
        self.settings.update({"daily_transaction_limit": "100.00"})
        self.engine.apply_transaction(self.account.id, "Deposit", "500.00")

        self.engine.apply_transaction(self.account.id, "Withdrawal", "60.00")
        with pytest.raises(LimitExceededError):
            self.engine.apply_transaction(self.account.id, "Withdrawal", "50.00")
        self.engine.apply_transaction(self.account.id, "Withdrawal", "40.00")
        assert self.balance() == Decimal("500.00")

    def test_backdated_debits_count_against_today(self):
        self.settings.update({"daily_transaction_limit": "100.00"})
        self.engine.apply_transaction(self.account.id, "Deposit", "500.00")
        self.engine.apply_transaction(self.account.id, "Withdrawal", "100.00")

        now = datetime.now(timezone.utc)
        for days in (3, 4, 5):
            with pytest.raises(LimitExceededError):
                self.engine.apply_transaction(
                    self.account.id, "Withdrawal", "100.00", timestamp=now - timedelta(days=days)
                )

        assert self.balance() == Decimal("500.00")
        assert len(self.ledger.list_by_account(self.account.id)) == 2


class TestInputValidation(BankFixture):

    def setup_method(self):
        self.build()

    @pytest.mark.parametrize("amount", ["0", "-5.00", "abc", None, True, float("nan")])
    def test_invalid_amount(self, amount):
        with pytest.raises(InvalidValueError):
            self.engine.apply_transaction(self.account.id, "Deposit", amount)

    def test_unknown_type(self):
        with pytest.raises(InvalidValueError):
            self.engine.apply_transaction(self.account.id, "Loan", "5.00")

    def test_invalid_value_reported_before_missing_account(self):
        with pytest.raises(InvalidValueError):
            self.engine.apply_transaction("missing", "Deposit", "-1")

    def test_unknown_account(self):
        with pytest.raises(NotFoundError):
            self.engine.apply_transaction("missing", "Deposit", "5.00")

    def test_inactive_account(self):
        self.accounts.update_status(self.account.id, "Inactive")
        with pytest.raises(InactiveAccountError):
            self.engine.apply_transaction(self.account.id, "Deposit", "5.00")
        assert self.balance() == Decimal("100.00")

    def test_amount_quantized_to_cents(self):
        txn = self.engine.apply_transaction(self.account.id, "Deposit", 0.125)
        assert txn.amount == Decimal("0.13")


class TestAtomicity(BankFixture):

    def setup_method(self):
        self.build(storage=FaultyStorage())

    def _assert_untouched(self):
        assert self.balance() == Decimal("100.00")
        assert self.ledger.list_by_account(self.account.id) == []

    def test_fault_on_balance_write_after_insert(self):
        self.storage.fail_save_on = "accounts"
        with pytest.raises(RuntimeError):
            self.engine.apply_transaction(self.account.id, "Deposit", "25.00")
        self.storage.fail_save_on = None
        self._assert_untouched()

    def test_fault_on_insert(self):
        self.storage.fail_save_on = "transactions"
        with pytest.raises(RuntimeError):
            self.engine.apply_transaction(self.account.id, "Deposit", "25.00")
        self.storage.fail_save_on = None
        self._assert_untouched()

    def test_caller_abort_mid_unit(self):
        self.storage.error = SimulatedAbort
        self.storage.fail_save_on = "accounts"
        with pytest.raises(SimulatedAbort):
            self.engine.apply_transaction(self.account.id, "Withdrawal", "5.00")
        self.storage.fail_save_on = None
        self._assert_untouched()

        # Lock was released: the account is usable again
        self.engine.apply_transaction(self.account.id, "Deposit", "1.00")
        assert self.balance() == Decimal("101.00")

    def test_reversal_fault_keeps_both_sides(self):
        txn = self.engine.apply_transaction(self.account.id, "Withdrawal", "30.00")

        self.storage.fail_delete_on = "transactions"
        with pytest.raises(RuntimeError):
            self.reversal.reverse_transaction(txn.id)
        self.storage.fail_delete_on = None

        assert self.balance() == Decimal("70.00")
        assert self.ledger.get(txn.id) is not None


class TestSQLiteAtomicity(BankFixture):

    def setup_method(self):
        self.build(storage=SQLiteStorage(":memory:"))

    def teardown_method(self):
        self.storage.close()

    def test_policy_failure_leaves_state(self):
        with pytest.raises(BelowMinimumBalanceError):
            self.engine.apply_transaction(self.account.id, "Withdrawal", "95.00")
        assert self.balance() == Decimal("100.00")
        assert self.ledger.count() == 0

    def test_apply_and_reverse(self):
        txn = self.engine.apply_transaction(self.account.id, "Deposit", "12.34")
        assert self.balance() == Decimal("112.34")
        self.reversal.reverse_transaction(txn.id)
        assert self.balance() == Decimal("100.00")


class TestBalanceConservation(BankFixture):

    def setup_method(self):
        self.build(balance="500.00")

    def test_final_balance_matches_remaining_deltas(self):
        ops = [
            ("Deposit", "120.00"), ("Withdrawal", "40.25"), ("Bill Pay", "15.10"),
            ("Transfer", "60.00"), ("Deposit", "3.35"), ("Withdrawal", "99.99"),
        ]
        applied = [self.engine.apply_transaction(self.account.id, t, a) for t, a in ops]

        self.reversal.reverse_transaction(applied[1].id)
        self.reversal.reverse_transaction(applied[4].id)

        remaining = self.ledger.list_by_account(self.account.id)
        assert len(remaining) == 4
        assert self.balance() == Decimal("500.00") + sum(t.delta for t in remaining)


class TestAudit(BankFixture):

    def setup_method(self):
        self.build()

    def test_admin_transaction_audited(self):
        txn = self.engine.apply_transaction(self.account.id, "Deposit", "5.00", actor=self.admin)

        entries = self.audit.list_entries(action="transaction.created")
        assert len(entries) == 1
        assert entries[0].actor_id == "admin-1"
        assert entries[0].details["transaction_id"] == txn.id
        assert entries[0].details["new_balance"] == "105.00"

    def test_user_transaction_not_audited(self):
        self.engine.apply_transaction(
            self.account.id, "Deposit", "5.00", actor=ActorContext(self.account.id)
        )
        self.engine.apply_transaction(self.account.id, "Deposit", "5.00")
        assert self.audit.count() == 0

    def test_audit_failure_does_not_undo_transaction(self):
        self.build(audit_class=ExplodingAudit)

        txn = self.engine.apply_transaction(self.account.id, "Deposit", "5.00", actor=self.admin)

        assert self.balance() == Decimal("105.00")
        assert self.ledger.get(txn.id) is not None
