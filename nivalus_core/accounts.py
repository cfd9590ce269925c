"""
Account Management Module

Persists account records: identity, credentials, status and the single
mutable balance field. Balance changes made by transactions go through the
balance mutation engine; this store only performs the writes it is asked to.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Any, TYPE_CHECKING
from enum import Enum
import hashlib
import hmac
import secrets
import threading
import uuid

from .errors import AlreadyExistsError, InvalidValueError, NotFoundError
from .logging_config import get_logger, log_action
from .money import ZERO
from .storage import StorageInterface, StorageRecord

if TYPE_CHECKING:
    from .transactions import TransactionLedger


SECRET_FIELDS = ("password_hash", "password_salt", "pin_hash", "pin_salt")


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "Active"
    INACTIVE = "Inactive"

    @classmethod
    def parse(cls, value: Any) -> 'AccountStatus':
        """Accept an AccountStatus, its value or its name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for status in cls:
                if value == status.value or value.upper() == status.name:
                    return status
        raise InvalidValueError(
            f"Invalid status {value!r}. Must be Active or Inactive.",
            details={"field": "status"}
        )


@dataclass
class Account(StorageRecord):
    """
    Bank account holding a single balance

    Secret fields (password/PIN hashes and salts) never leave the core:
    use ``without_secrets()`` before handing an account to a caller.
    """
    full_name: str
    username: str
    email: str
    balance: Decimal
    status: AccountStatus = AccountStatus.ACTIVE
    is_admin: bool = False
    phone: Optional[str] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None
    pin_hash: Optional[str] = None
    pin_salt: Optional[str] = None
    avatar_url: Optional[str] = None
    last_login: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def without_secrets(self) -> 'Account':
        """Copy of this account with credential material removed"""
        return replace(
            self,
            password_hash=None,
            password_salt=None,
            pin_hash=None,
            pin_salt=None
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        return result

    def to_public_dict(self) -> Dict[str, Any]:
        """Serializable view for callers, with no credential fields at all"""
        result = self.to_dict()
        for key in SECRET_FIELDS:
            result.pop(key, None)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['balance'] = Decimal(data['balance'])
        data['status'] = AccountStatus(data['status'])
        if data.get('last_login'):
            data['last_login'] = datetime.fromisoformat(data['last_login'])
        return super().from_dict(data)


def _hash_secret(secret: str, salt: str) -> str:
    """Hash a password or PIN with scrypt"""
    return hashlib.scrypt(
        secret.encode(),
        salt=salt.encode(),
        n=16384, r=8, p=1
    ).hex()


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidValueError(f"{field_name} is required", details={"field": field_name})
    return str(value).strip()


class AccountStore:
    """
    Account persistence with uniqueness on username and email
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: Optional['TransactionLedger'] = None,
        table_name: str = "accounts"
    ):
        self.storage = storage
        self.ledger = ledger
        self.table_name = table_name
        self.logger = get_logger("nivalus.accounts")
        self._create_lock = threading.Lock()

    def create(
        self,
        full_name: str,
        username: str,
        email: str,
        password: str,
        pin: str,
        phone: Optional[str] = None,
        balance: Decimal = ZERO,
        is_admin: bool = False
    ) -> Account:
        """
        Create a new account

        Raises:
            InvalidValueError: If a required field is empty or balance is negative
            AlreadyExistsError: If the username or email is already registered
        """
        full_name = _require_text(full_name, "full_name")
        username = _require_text(username, "username")
        email = _require_text(email, "email").lower()
        password = _require_text(password, "password")
        pin = _require_text(pin, "pin")
        if balance < ZERO:
            raise InvalidValueError("Initial balance must be zero or greater", details={"field": "balance"})

        now = datetime.now(timezone.utc)
        password_salt = secrets.token_hex(16)
        pin_salt = secrets.token_hex(16)

        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            full_name=full_name,
            username=username,
            email=email,
            balance=balance,
            is_admin=is_admin,
            phone=phone or None,
            password_hash=_hash_secret(password, password_salt),
            password_salt=password_salt,
            pin_hash=_hash_secret(pin, pin_salt),
            pin_salt=pin_salt
        )

        with self._create_lock:
            if self.storage.find(self.table_name, {"username": username}):
                raise AlreadyExistsError("Username already taken", details={"field": "username"})
            if self.storage.find(self.table_name, {"email": email}):
                raise AlreadyExistsError("Email already registered", details={"field": "email"})
            self._save(account)

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={"username": username, "balance": str(balance), "is_admin": is_admin}
        )
        return account

    def get(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def require(self, account_id: str) -> Account:
        """Get account by ID or raise NotFoundError"""
        account = self.get(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
        return account

    def get_by_username(self, username: str) -> Optional[Account]:
        """Get account by username"""
        found = self.storage.find(self.table_name, {"username": username})
        if found:
            return Account.from_dict(found[0])
        return None

    def list_accounts(self) -> List[Account]:
        """All accounts ordered by username"""
        accounts = [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]
        accounts.sort(key=lambda a: a.username)
        return accounts

    def update_balance(self, account_id: str, new_balance: Decimal) -> Account:
        """Write a new balance value; policy is the caller's concern"""
        account = self.require(account_id)
        account.balance = new_balance
        account.updated_at = datetime.now(timezone.utc)
        self._save(account)
        return account

    def update_status(self, account_id: str, status: AccountStatus) -> Account:
        """Set the account status"""
        account = self.require(account_id)
        account.status = AccountStatus.parse(status)
        account.updated_at = datetime.now(timezone.utc)
        self._save(account)
        return account

    def update_avatar(self, account_id: str, avatar_url: Optional[str]) -> Account:
        """Point the account at a stored avatar, or clear it with None"""
        account = self.require(account_id)
        account.avatar_url = avatar_url
        account.updated_at = datetime.now(timezone.utc)
        self._save(account)
        return account

    def record_login(self, account_id: str) -> Account:
        """Stamp last_login with the current time"""
        account = self.require(account_id)
        account.last_login = datetime.now(timezone.utc)
        self._save(account)
        return account

    def delete(self, account_id: str) -> int:
        """
        Delete an account together with all of its transactions

        This is the destructive admin operation, distinct from reversal:
        balances are not touched, records are simply removed.

        Returns:
            Number of transactions removed with the account
        """
        with self.storage.atomic():
            self.require(account_id)
            removed = self.ledger.delete_for_account(account_id) if self.ledger else 0
            self.storage.delete(self.table_name, account_id)

        log_action(
            self.logger, "info", "Account deleted",
            action="delete_account", resource=f"account:{account_id}",
            extra={"transactions_removed": removed}
        )
        return removed

    def verify_password(self, account: Account, password: str) -> bool:
        """Check a password against the stored hash"""
        if not account.password_hash or not account.password_salt or not password:
            return False
        candidate = _hash_secret(password, account.password_salt)
        return hmac.compare_digest(candidate, account.password_hash)

    def verify_pin(self, account: Account, pin: str) -> bool:
        """Check a PIN against the stored hash"""
        if not account.pin_hash or not account.pin_salt or not pin:
            return False
        candidate = _hash_secret(pin, account.pin_salt)
        return hmac.compare_digest(candidate, account.pin_hash)

    def _save(self, account: Account) -> None:
        self.storage.save(self.table_name, account.id, account.to_dict())
