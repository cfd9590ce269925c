"""
Transaction Ledger Module

Append/delete store of transaction records. Each record belongs to exactly
one account and is never modified after insertion; it disappears only
through a reversal or an account deletion.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .errors import InvalidValueError, NotFoundError
from .logging_config import get_logger
from .money import ZERO
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    """Types of balance-affecting transactions"""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    TRANSFER = "Transfer"
    BILL_PAY = "Bill Pay"

    @property
    def is_debit(self) -> bool:
        """Debit types decrease the balance"""
        return self != TransactionType.DEPOSIT

    @classmethod
    def parse(cls, value: Any) -> 'TransactionType':
        """Accept a TransactionType, its value ("Bill Pay") or its name ("BILL_PAY", "BillPay")"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.replace(" ", "").replace("_", "").upper()
            for txn_type in cls:
                if normalized == txn_type.name.replace("_", ""):
                    return txn_type
        raise InvalidValueError(
            f"Invalid transaction type {value!r}",
            details={"field": "transaction_type", "allowed": [t.value for t in cls]}
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Transaction(StorageRecord):
    """
    Immutable record of one balance-affecting event
    """
    account_id: str
    transaction_type: TransactionType
    amount: Decimal
    timestamp: datetime
    description: str = "Transaction"
    recipient_details: Optional[Dict[str, Any]] = None
    balance_after: Optional[Decimal] = None

    def __post_init__(self):
        if self.amount <= ZERO:
            raise InvalidValueError("Transaction amount must be positive")
        self.timestamp = _as_utc(self.timestamp)

    @property
    def delta(self) -> Decimal:
        """Signed effect of this transaction on the balance"""
        return -self.amount if self.transaction_type.is_debit else self.amount

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['transaction_type'] = self.transaction_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['amount'] = Decimal(data['amount'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        if data.get('balance_after') is not None:
            data['balance_after'] = Decimal(data['balance_after'])
        return super().from_dict(data)


def new_transaction(
    account_id: str,
    transaction_type: TransactionType,
    amount: Decimal,
    description: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    recipient_details: Optional[Dict[str, Any]] = None,
    balance_after: Optional[Decimal] = None
) -> Transaction:
    """Build a transaction record with a fresh id"""
    now = datetime.now(timezone.utc)
    return Transaction(
        id=str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
        account_id=account_id,
        transaction_type=transaction_type,
        amount=amount,
        timestamp=timestamp or now,
        description=description or "Transaction",
        recipient_details=recipient_details,
        balance_after=balance_after
    )


class TransactionLedger:
    """
    Storage of transaction records, listed newest first by timestamp
    """

    def __init__(self, storage: StorageInterface, table_name: str = "transactions"):
        self.storage = storage
        self.table_name = table_name
        self.logger = get_logger("nivalus.transactions")

    def insert(self, transaction: Transaction) -> Transaction:
        """Insert a new record; ids are never reused"""
        if self.storage.exists(self.table_name, transaction.id):
            raise InvalidValueError(f"Transaction {transaction.id} already recorded")
        self.storage.save(self.table_name, transaction.id, transaction.to_dict())
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID"""
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def delete(self, transaction_id: str) -> None:
        """
        Remove a record

        Raises:
            NotFoundError: If no record has this id
        """
        if not self.storage.delete(self.table_name, transaction_id):
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": transaction_id}
            )

    def delete_for_account(self, account_id: str) -> int:
        """Remove every record of one account, returning how many were removed"""
        records = self.storage.find(self.table_name, {"account_id": account_id})
        for data in records:
            self.storage.delete(self.table_name, data['id'])
        return len(records)

    def list_by_account(self, account_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """
        Transactions of one account, newest timestamp first

        Args:
            account_id: Owning account
            limit: Maximum number of records; None for all
        """
        if limit is not None and limit < 0:
            raise InvalidValueError("limit must be zero or greater", details={"field": "limit"})
        records = self.storage.find(self.table_name, {"account_id": account_id})
        transactions = self._sorted(records)
        if limit is not None:
            transactions = transactions[:limit]
        return transactions

    def list_all(self) -> List[Transaction]:
        """Every transaction, newest timestamp first"""
        return self._sorted(self.storage.load_all(self.table_name))

    def sum_debits_on(self, account_id: str, day: date) -> Decimal:
        """
        Total of debit amounts recorded on the given UTC day

        Keyed on ``created_at``, not the caller-supplied ``timestamp``, so a
        backdated debit still counts against the day it was recorded.
        """
        total = ZERO
        for txn in self.list_by_account(account_id):
            if txn.transaction_type.is_debit and txn.created_at.astimezone(timezone.utc).date() == day:
                total += txn.amount
        return total

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def _sorted(self, records: List[Dict[str, Any]]) -> List[Transaction]:
        transactions = [Transaction.from_dict(data) for data in records]
        transactions.sort(key=lambda t: t.timestamp, reverse=True)
        return transactions
