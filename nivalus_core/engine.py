"""
Balance Mutation Engine Module

Validates a transaction intent against account state and policy settings,
then records the transaction and writes the new balance in one atomic unit
while holding the account's lock.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from .accounts import Account, AccountStore
from .audit import ActorContext, AuditAction, AuditRecorder
from .errors import (
    BelowMinimumBalanceError, InactiveAccountError, InsufficientFundsError,
    LimitExceededError
)
from .locks import AccountLockManager
from .logging_config import get_logger, log_action
from .money import format_amount, to_positive_amount
from .settings import Settings, SettingsStore
from .storage import StorageInterface
from .transactions import Transaction, TransactionLedger, TransactionType, new_transaction


class BalanceMutationEngine:
    """
    Applies Deposit, Withdrawal, Transfer and Bill Pay transactions
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        ledger: TransactionLedger,
        settings_store: SettingsStore,
        audit: Optional[AuditRecorder] = None,
        lock_manager: Optional[AccountLockManager] = None
    ):
        self.storage = storage
        self.accounts = accounts
        self.ledger = ledger
        self.settings_store = settings_store
        self.audit = audit
        self.lock_manager = lock_manager or AccountLockManager()
        self.logger = get_logger("nivalus.engine")

    def apply_transaction(
        self,
        account_id: str,
        transaction_type: Any,
        amount: Any,
        description: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        recipient_details: Optional[Dict[str, Any]] = None,
        actor: Optional[ActorContext] = None
    ) -> Transaction:
        """
        Validate and apply one transaction to an account balance

        Args:
            account_id: Account whose balance changes
            transaction_type: TransactionType or its name/value
            amount: Positive amount
            description: Free text, "Transaction" when omitted
            timestamp: Event time, now when omitted
            recipient_details: Optional payee data for transfers and bills
            actor: Acting identity for audit attribution

        Returns:
            The recorded Transaction with balance_after set

        Raises:
            InvalidValueError: Non-positive amount or unknown type
            NotFoundError: Unknown account
            InactiveAccountError: Account is not Active
            LimitExceededError: Amount above the per-transaction or daily limit
            InsufficientFundsError: Debit larger than the balance
            BelowMinimumBalanceError: Debit would leave less than the floor
            ContentionError: Account lock not acquired in time
        """
        amount = to_positive_amount(amount)
        txn_type = TransactionType.parse(transaction_type)

        # Unknown ids fail before a lock is registered for them
        self.accounts.require(account_id)

        with self.lock_manager.hold(account_id):
            # Snapshot read stays outside the storage unit; a first read may write defaults
            settings = self.settings_store.get()
            with self.storage.atomic():
                account = self.accounts.require(account_id)
                if not account.is_active:
                    raise InactiveAccountError(
                        f"Account {account_id} is {account.status.value}",
                        details={"account_id": account_id, "status": account.status.value}
                    )

                transaction = new_transaction(
                    account_id=account_id,
                    transaction_type=txn_type,
                    amount=amount,
                    description=description,
                    timestamp=timestamp,
                    recipient_details=recipient_details
                )
                self._check_policy(account, transaction, settings)

                new_balance = account.balance + transaction.delta
                transaction.balance_after = new_balance
                self.ledger.insert(transaction)
                self.accounts.update_balance(account_id, new_balance)

        log_action(
            self.logger, "info", f"Transaction applied: {txn_type.value}",
            user_id=actor.actor_id if actor else None,
            action="apply_transaction", resource=f"transaction:{transaction.id}",
            extra={
                "account_id": account_id,
                "transaction_type": txn_type.value,
                "amount": format_amount(amount),
                "new_balance": format_amount(new_balance)
            }
        )

        if actor is not None and actor.is_admin:
            self._record_audit(actor, AuditAction.TRANSACTION_CREATED, {
                "transaction_id": transaction.id,
                "account_id": account_id,
                "type": txn_type.value,
                "amount": amount,
                "new_balance": new_balance
            })

        return transaction

    def _check_policy(self, account: Account, transaction: Transaction, settings: Settings) -> None:
        """Raise the first policy violation; checks only read, never write"""
        amount = transaction.amount

        if amount > settings.max_transaction_limit:
            raise LimitExceededError(
                f"Transaction amount exceeds the maximum limit of {format_amount(settings.max_transaction_limit)}",
                details={"limit": str(settings.max_transaction_limit), "amount": str(amount)}
            )

        if not transaction.transaction_type.is_debit:
            return

        spent_today = self.ledger.sum_debits_on(account.id, transaction.created_at.date())
        if spent_today + amount > settings.daily_transaction_limit:
            raise LimitExceededError(
                f"Transaction would exceed the daily limit of {format_amount(settings.daily_transaction_limit)}",
                details={
                    "limit": str(settings.daily_transaction_limit),
                    "spent_today": str(spent_today),
                    "amount": str(amount)
                }
            )

        if account.balance < amount:
            raise InsufficientFundsError(
                "Insufficient funds",
                details={"balance": str(account.balance), "amount": str(amount)}
            )

        if account.balance - amount < settings.minimum_balance:
            raise BelowMinimumBalanceError(
                f"Transaction would bring balance below minimum of {format_amount(settings.minimum_balance)}",
                details={
                    "balance": str(account.balance),
                    "amount": str(amount),
                    "minimum_balance": str(settings.minimum_balance)
                }
            )

    def _record_audit(self, actor: ActorContext, action: AuditAction, details: Dict[str, Any]) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record(action, actor_id=actor.actor_id, details=details)
        except Exception:
            log_action(
                self.logger, "error", f"Audit emission failed for {action.value}",
                user_id=actor.actor_id, action=action.value, extra=details, exc_info=True
            )
