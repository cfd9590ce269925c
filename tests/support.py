"""
Shared test helpers: engine wiring around one account and fault injection
"""

from decimal import Decimal

from nivalus_core.accounts import AccountStore
from nivalus_core.audit import ActorContext, AuditRecorder
from nivalus_core.config import NivalusConfig
from nivalus_core.engine import BalanceMutationEngine
from nivalus_core.locks import AccountLockManager
from nivalus_core.reversal import ReversalEngine
from nivalus_core.settings import SettingsStore
from nivalus_core.storage import InMemoryStorage
from nivalus_core.transactions import TransactionLedger


class FaultyStorage(InMemoryStorage):
    """In-memory storage that fails writes to one table on demand"""

    def __init__(self):
        super().__init__()
        self.fail_save_on = None
        self.fail_delete_on = None
        self.error = RuntimeError

    def save(self, table, record_id, data):
        if table == self.fail_save_on:
            raise self.error(f"simulated write failure on {table}")
        super().save(table, record_id, data)

    def delete(self, table, record_id):
        if table == self.fail_delete_on:
            raise self.error(f"simulated delete failure on {table}")
        return super().delete(table, record_id)


class SimulatedAbort(BaseException):
    pass


class ExplodingAudit(AuditRecorder):
    def record(self, action, actor_id=None, details=None):
        raise RuntimeError("audit store unavailable")


class BankFixture:
    """Wire up engine components around one account"""

    def build(self, storage=None, audit_class=AuditRecorder, balance="100.00"):
        self.storage = storage or InMemoryStorage()
        self.config = NivalusConfig(
            database_url="memory://",
            default_minimum_balance="10.00",
            default_max_transaction_limit="1000.00",
            default_daily_transaction_limit="50000.00"
        )
        self.ledger = TransactionLedger(self.storage)
        self.accounts = AccountStore(self.storage, self.ledger)
        self.settings = SettingsStore(self.storage, self.config)
        self.audit = audit_class(self.storage)
        self.locks = AccountLockManager(timeout_seconds=2.0)
        self.engine = BalanceMutationEngine(
            self.storage, self.accounts, self.ledger, self.settings, self.audit, self.locks
        )
        self.reversal = ReversalEngine(self.storage, self.accounts, self.ledger, self.audit, self.locks)
        self.account = self.accounts.create(
            "Jane Doe", "jane", "jane@example.com", "pw", "1234", balance=Decimal(balance)
        )
        self.admin = ActorContext("admin-1", is_admin=True)

    def balance(self):
        return self.accounts.require(self.account.id).balance


