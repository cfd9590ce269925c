"""
Banking Core Facade Module

Wires storage, stores, engines, locks and audit together and exposes the
operation surface used by callers such as the HTTP adapter. Identity and
authorization decisions belong to the caller; the facade only takes the
acting identity for audit attribution.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .accounts import Account, AccountStore
from .audit import ActorContext, AuditAction, AuditEntry, AuditRecorder
from .config import NivalusConfig, get_config
from .engine import BalanceMutationEngine
from .errors import AuthenticationFailedError, InvalidValueError
from .file_storage import FileStorage, LocalFileStorage
from .locks import AccountLockManager
from .logging_config import get_logger, log_action
from .money import to_amount
from .reversal import ReversalEngine
from .schemas import (
    ApplyTransactionRequest, CreateAccountRequest, LoginRequest, UpdateBalanceRequest,
    UpdateSettingsRequest, UpdateStatusRequest, VerifyPinRequest, parse_request
)
from .settings import Settings, SettingsStore
from .storage import StorageInterface, create_storage
from .transactions import Transaction, TransactionLedger


AVATAR_EXTENSIONS = (".jpg", ".jpeg", ".png")


@dataclass
class TransactionListing:
    """A transaction joined with its owner's identity for admin views"""
    transaction: Transaction
    username: str
    full_name: str

    def to_dict(self) -> Dict[str, Any]:
        result = self.transaction.to_dict()
        result['username'] = self.username
        result['full_name'] = self.full_name
        return result


class BankingCore:
    """Transaction-and-balance consistency core with all components initialized"""

    def __init__(
        self,
        config: Optional[NivalusConfig] = None,
        storage: Optional[StorageInterface] = None,
        file_storage: Optional[FileStorage] = None,
        lock_manager: Optional[AccountLockManager] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger("nivalus.core")

        # Initialize storage
        self.storage = storage or create_storage(
            self.config.database_url, lock_timeout_seconds=self.config.lock_timeout_seconds
        )
        self.file_storage = file_storage or LocalFileStorage(
            Path(self.config.avatar_dir), self.config.avatar_url_prefix
        )
        self.lock_manager = lock_manager or AccountLockManager(self.config.lock_timeout_seconds)

        # Initialize core components
        self.ledger = TransactionLedger(self.storage)
        self.accounts = AccountStore(self.storage, self.ledger)
        self.settings_store = SettingsStore(self.storage, self.config)
        self.audit = AuditRecorder(self.storage) if self.config.enable_audit_logging else None
        self.engine = BalanceMutationEngine(
            self.storage, self.accounts, self.ledger, self.settings_store,
            self.audit, self.lock_manager
        )
        self.reversal = ReversalEngine(
            self.storage, self.accounts, self.ledger, self.audit, self.lock_manager
        )

    # Transactions

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
        """Validate the request, then apply it through the balance mutation engine"""
        request = parse_request(ApplyTransactionRequest, {
            "account_id": account_id,
            "transaction_type": transaction_type,
            "amount": amount,
            "description": description,
            "timestamp": timestamp,
            "recipient_details": recipient_details
        })
        return self.engine.apply_transaction(
            request.account_id,
            request.transaction_type,
            request.amount,
            description=request.description,
            timestamp=request.timestamp,
            recipient_details=request.recipient_details,
            actor=actor
        )

    def reverse_transaction(self, transaction_id: str, actor: Optional[ActorContext] = None) -> None:
        """Undo a transaction and restore the balance it changed"""
        self.reversal.reverse_transaction(transaction_id, actor=actor)

    def list_transactions(self, account_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """
        Recent activity of one account, newest first

        Args:
            account_id: Owning account
            limit: Maximum count, ``recent_activity_limit`` when omitted
        """
        self.accounts.require(account_id)
        if limit is None:
            limit = self.config.recent_activity_limit
        return self.ledger.list_by_account(account_id, limit=limit)

    def list_all_transactions(self) -> List[TransactionListing]:
        """Every transaction with its owner's username and full name, newest first"""
        owners = {account.id: account for account in self.accounts.list_accounts()}
        listings = []
        for txn in self.ledger.list_all():
            owner = owners.get(txn.account_id)
            if owner is None:
                continue
            listings.append(TransactionListing(txn, owner.username, owner.full_name))
        return listings

    # Accounts

    def get_account(self, account_id: str) -> Account:
        """Account with credential material removed"""
        return self.accounts.require(account_id).without_secrets()

    def list_accounts(self) -> List[Account]:
        """All accounts ordered by username, credential material removed"""
        return [account.without_secrets() for account in self.accounts.list_accounts()]

    def create_account(
        self,
        full_name: str,
        username: str,
        email: str,
        password: str,
        pin: str,
        phone: Optional[str] = None,
        balance: Optional[Any] = None,
        is_admin: bool = False,
        actor: Optional[ActorContext] = None
    ) -> Account:
        """
        Register a new account

        The initial balance, when given, is written directly and not
        recorded as a transaction.

        Raises:
            InvalidValueError: Missing fields or a negative balance
            AlreadyExistsError: Username or email already registered
        """
        request = parse_request(CreateAccountRequest, {
            "full_name": full_name,
            "username": username,
            "email": email,
            "password": password,
            "pin": pin,
            "phone": phone,
            "balance": balance,
            "is_admin": is_admin
        })
        initial_balance = to_amount(
            request.balance if request.balance is not None else self.config.default_initial_balance,
            "balance"
        )

        account = self.accounts.create(
            full_name=request.full_name,
            username=request.username,
            email=request.email,
            password=request.password,
            pin=request.pin,
            phone=request.phone,
            balance=initial_balance,
            is_admin=request.is_admin
        )

        if actor is not None and actor.is_admin:
            self._record_audit(actor, AuditAction.ACCOUNT_CREATED, {
                "account_id": account.id,
                "username": account.username,
                "is_admin": account.is_admin,
                "balance": account.balance
            })
        return account.without_secrets()

    def update_account_status(
        self,
        account_id: str,
        status: Any,
        actor: Optional[ActorContext] = None
    ) -> Account:
        """Set an account Active or Inactive"""
        request = parse_request(UpdateStatusRequest, {"status": status})
        with self.lock_manager.hold(account_id):
            previous = self.accounts.require(account_id).status
            account = self.accounts.update_status(account_id, request.status)

        self._record_audit(actor, AuditAction.ACCOUNT_STATUS_UPDATED, {
            "account_id": account_id,
            "previous_status": previous,
            "status": account.status
        })
        return account.without_secrets()

    def update_account_balance(
        self,
        account_id: str,
        balance: Any,
        actor: Optional[ActorContext] = None
    ) -> Account:
        """
        Admin override of the stored balance

        Bypasses transaction policy and records no transaction; the value
        only has to be zero or greater.
        """
        request = parse_request(UpdateBalanceRequest, {"balance": balance})
        new_balance = to_amount(request.balance, "balance")
        with self.lock_manager.hold(account_id):
            with self.storage.atomic():
                previous = self.accounts.require(account_id).balance
                account = self.accounts.update_balance(account_id, new_balance)

        log_action(
            self.logger, "warning", "Balance overridden",
            user_id=actor.actor_id if actor else None,
            action="update_account_balance", resource=f"account:{account_id}",
            extra={"previous_balance": str(previous), "balance": str(new_balance)}
        )
        self._record_audit(actor, AuditAction.ACCOUNT_BALANCE_UPDATED, {
            "account_id": account_id,
            "previous_balance": previous,
            "balance": new_balance
        })
        return account.without_secrets()

    def delete_account(self, account_id: str, actor: Optional[ActorContext] = None) -> int:
        """
        Delete an account and every transaction it owns

        Returns:
            Number of transactions removed
        """
        with self.lock_manager.hold(account_id):
            account = self.accounts.require(account_id)
            removed = self.accounts.delete(account_id)
        self.lock_manager.forget(account_id)

        if account.avatar_url:
            self.file_storage.delete(account.avatar_url)

        self._record_audit(actor, AuditAction.ACCOUNT_DELETED, {
            "account_id": account_id,
            "username": account.username,
            "transactions_removed": removed
        })
        return removed

    # Settings

    def get_settings(self) -> Settings:
        return self.settings_store.get()

    def update_settings(self, fields: Mapping[str, Any], actor: Optional[ActorContext] = None) -> Settings:
        """Replace some or all policy values; every value must be >= 0"""
        request = parse_request(UpdateSettingsRequest, fields)
        changes = request.changes()
        settings = self.settings_store.update(changes)
        self._record_audit(actor, AuditAction.SETTINGS_UPDATED, {
            name: getattr(settings, name) for name in changes
        })
        return settings

    # Credentials

    def authenticate(self, username: str, password: str) -> Account:
        """
        Check a username/password pair and stamp last_login

        Raises:
            AuthenticationFailedError: Unknown user, wrong password or
                inactive account, all with the same message
        """
        request = parse_request(LoginRequest, {"username": username, "password": password})
        account = self.accounts.get_by_username(request.username)
        if (account is None
                or not account.is_active
                or not self.accounts.verify_password(account, request.password)):
            log_action(
                self.logger, "warning", "Login failed",
                action="login", resource=f"username:{request.username}"
            )
            raise AuthenticationFailedError("Invalid username or password")

        with self.lock_manager.hold(account.id):
            account = self.accounts.record_login(account.id)
        log_action(
            self.logger, "info", "Login succeeded",
            user_id=account.id, action="login", resource=f"account:{account.id}"
        )
        if account.is_admin:
            self._record_audit(ActorContext(account.id, is_admin=True), AuditAction.ADMIN_LOGIN, {
                "username": account.username
            })
        return account.without_secrets()

    def verify_pin(self, account_id: str, pin: str) -> bool:
        """True when the PIN matches the account's stored PIN"""
        request = parse_request(VerifyPinRequest, {"pin": pin})
        account = self.accounts.require(account_id)
        return self.accounts.verify_pin(account, request.pin)

    # Avatars

    def set_avatar(self, account_id: str, data: bytes, filename: str) -> Account:
        """
        Store a new avatar image and point the account at it

        Raises:
            InvalidValueError: Not a .jpg/.jpeg/.png file, empty, or larger
                than ``avatar_max_bytes``
            NotFoundError: Unknown account
        """
        extension = Path(filename or "").suffix.lower()
        if extension not in AVATAR_EXTENSIONS:
            raise InvalidValueError(
                "Only .png, .jpg and .jpeg format allowed!",
                details={"field": "filename", "allowed": list(AVATAR_EXTENSIONS)}
            )
        if not data:
            raise InvalidValueError("Avatar file is empty", details={"field": "data"})
        if len(data) > self.config.avatar_max_bytes:
            raise InvalidValueError(
                f"Avatar exceeds the {self.config.avatar_max_bytes} byte limit",
                details={"field": "data", "size": len(data)}
            )

        # Unknown ids fail before the file is written or a lock is registered
        self.accounts.require(account_id)
        url = self.file_storage.store(bytes(data), f"avatar-{account_id}{extension}")
        with self.lock_manager.hold(account_id):
            previous = self.accounts.require(account_id).avatar_url
            account = self.accounts.update_avatar(account_id, url)
        if previous and previous != url:
            self.file_storage.delete(previous)

        log_action(
            self.logger, "info", "Avatar uploaded",
            user_id=account_id, action="set_avatar", resource=f"account:{account_id}",
            extra={"avatar_url": url, "bytes": len(data)}
        )
        return account.without_secrets()

    def remove_avatar(self, account_id: str) -> Account:
        """Delete the stored avatar, if any, and clear the account's URL"""
        self.accounts.require(account_id)
        with self.lock_manager.hold(account_id):
            previous = self.accounts.require(account_id).avatar_url
            account = self.accounts.update_avatar(account_id, None)
        if previous:
            self.file_storage.delete(previous)
        return account.without_secrets()

    # Audit

    def list_audit_entries(
        self,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        if self.audit is None:
            return []
        return self.audit.list_entries(actor_id=actor_id, action=action, limit=limit)

    def verify_audit_integrity(self) -> Dict[str, Any]:
        if self.audit is None:
            return {'valid': True, 'total_entries': 0, 'hash_errors': [], 'chain_breaks': []}
        return self.audit.verify_integrity()

    def close(self) -> None:
        self.storage.close()

    def _record_audit(
        self,
        actor: Optional[ActorContext],
        action: AuditAction,
        details: Dict[str, Any]
    ) -> None:
        """Append an audit entry; a failure here is logged and never undoes the operation"""
        if self.audit is None:
            return
        actor_id = actor.actor_id if actor else None
        try:
            self.audit.record(action, actor_id=actor_id, details=details)
        except Exception:
            log_action(
                self.logger, "error", f"Audit emission failed for {action.value}",
                user_id=actor_id, action=action.value, exc_info=True
            )
