"""
Reversal Engine Module

Compensating deletion of a transaction: the inverse delta goes back onto the
owning account's balance and the record is removed, both in one atomic unit.
Reversal is a corrective admin action, so no policy check runs on it.
"""

from typing import Any, Dict, Optional

from .accounts import AccountStore
from .audit import ActorContext, AuditAction, AuditRecorder
from .errors import NotFoundError
from .locks import AccountLockManager
from .logging_config import get_logger, log_action
from .money import format_amount
from .storage import StorageInterface
from .transactions import TransactionLedger


class ReversalEngine:
    """Undo a recorded transaction"""

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        ledger: TransactionLedger,
        audit: Optional[AuditRecorder] = None,
        lock_manager: Optional[AccountLockManager] = None
    ):
        self.storage = storage
        self.accounts = accounts
        self.ledger = ledger
        self.audit = audit
        self.lock_manager = lock_manager or AccountLockManager()
        self.logger = get_logger("nivalus.reversal")

    def _require_transaction(self, transaction_id: str):
        transaction = self.ledger.get(transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id}
            )
        return transaction

    def reverse_transaction(self, transaction_id: str, actor: Optional[ActorContext] = None) -> None:
        """
        Reverse a transaction

        Args:
            transaction_id: Transaction to remove
            actor: Acting identity for audit attribution

        Raises:
            NotFoundError: Transaction or its owning account is absent,
                including when a concurrent reversal removed it first
            ContentionError: Account lock not acquired in time
        """
        transaction = self._require_transaction(transaction_id)
        account_id = transaction.account_id
        self.accounts.require(account_id)

        with self.lock_manager.hold(account_id):
            with self.storage.atomic():
                transaction = self._require_transaction(transaction_id)
                account = self.accounts.require(account_id)

                new_balance = account.balance - transaction.delta
                self.accounts.update_balance(account_id, new_balance)
                self.ledger.delete(transaction_id)

        actor_id = actor.actor_id if actor else None
        details: Dict[str, Any] = {
            "transaction_id": transaction_id,
            "account_id": account_id,
            "type": transaction.transaction_type.value,
            "amount": transaction.amount,
            "new_balance": new_balance
        }

        log_action(
            self.logger, "info", "Transaction reversed",
            user_id=actor_id, action="reverse_transaction",
            resource=f"transaction:{transaction_id}",
            extra={
                "account_id": account_id,
                "amount": format_amount(transaction.amount),
                "new_balance": format_amount(new_balance)
            }
        )

        if self.audit is None:
            return
        try:
            self.audit.record(AuditAction.TRANSACTION_REVERSED, actor_id=actor_id, details=details)
        except Exception:
            log_action(
                self.logger, "error", "Audit emission failed for transaction.reversed",
                user_id=actor_id, action=AuditAction.TRANSACTION_REVERSED.value,
                resource=f"transaction:{transaction_id}", exc_info=True
            )
