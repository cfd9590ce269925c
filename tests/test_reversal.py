"""
Tests for the reversal engine
"""

import pytest
from decimal import Decimal

from nivalus_core.audit import ActorContext
from nivalus_core.errors import NotFoundError

from support import BankFixture


class TestReversalEngine(BankFixture):

    def setup_method(self):
        self.build()

    def test_reverse_deposit_subtracts(self):
        txn = self.engine.apply_transaction(self.account.id, "Deposit", "40.00")
        self.reversal.reverse_transaction(txn.id)
        assert self.balance() == Decimal("100.00")

    def test_reverse_debit_adds_back(self):
        txn = self.engine.apply_transaction(self.account.id, "Bill Pay", "25.00")
        self.reversal.reverse_transaction(txn.id)
        assert self.balance() == Decimal("100.00")

    def test_second_reversal_not_found(self):
        txn = self.engine.apply_transaction(self.account.id, "Withdrawal", "50.00")
        self.reversal.reverse_transaction(txn.id)

        with pytest.raises(NotFoundError):
            self.reversal.reverse_transaction(txn.id)
        assert self.balance() == Decimal("100.00")

    def test_unknown_transaction(self):
        with pytest.raises(NotFoundError):
            self.reversal.reverse_transaction("does-not-exist")

    def test_no_policy_check_on_reversal(self):
        """A corrective reversal may leave the balance below the floor"""
        deposit = self.engine.apply_transaction(self.account.id, "Deposit", "50.00")
        self.engine.apply_transaction(self.account.id, "Withdrawal", "130.00")
        assert self.balance() == Decimal("20.00")

        self.reversal.reverse_transaction(deposit.id)

        assert self.balance() == Decimal("-30.00")

    def test_reversal_audited(self):
        txn = self.engine.apply_transaction(self.account.id, "Transfer", "10.00")

        self.reversal.reverse_transaction(txn.id, actor=ActorContext("admin-1", is_admin=True))

        entries = self.audit.list_entries(action="transaction.reversed")
        assert len(entries) == 1
        assert entries[0].actor_id == "admin-1"
        assert entries[0].details == {
            "transaction_id": txn.id,
            "account_id": self.account.id,
            "type": "Transfer",
            "amount": "10.00",
            "new_balance": "100.00"
        }

    def test_reversal_without_actor_still_audited(self):
        txn = self.engine.apply_transaction(self.account.id, "Deposit", "10.00")
        self.reversal.reverse_transaction(txn.id)

        entries = self.audit.list_entries(action="transaction.reversed")
        assert len(entries) == 1
        assert entries[0].actor_id is None
