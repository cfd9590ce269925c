"""
Audit Trail Module

Hash-chained, append-only log of administrative actions with SHA-256 for
tamper detection. Entries are never modified or deleted by normal operation.
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord


class AuditAction(Enum):
    """Well-known audit tags; any other string is accepted as a free-form tag"""
    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_REVERSED = "transaction.reversed"
    ACCOUNT_CREATED = "account.created"
    ACCOUNT_DELETED = "account.deleted"
    ACCOUNT_STATUS_UPDATED = "account.status_updated"
    ACCOUNT_BALANCE_UPDATED = "account.balance_updated"
    SETTINGS_UPDATED = "settings.updated"
    ADMIN_LOGIN = "admin.login"


@dataclass(frozen=True)
class ActorContext:
    """Identity of the caller on whose behalf an operation runs"""
    actor_id: str
    is_admin: bool = False


def _convert_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: _convert_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_convert_value(v) for v in value]
    return value


@dataclass
class AuditEntry(StorageRecord):
    """
    Immutable audit entry chained to its predecessor by hash
    """
    sequence: int
    actor_id: Optional[str]
    action: str
    details: Dict[str, Any]
    timestamp: datetime
    previous_hash: str
    current_hash: str

    def __post_init__(self):
        if self.details:
            self.details = {k: _convert_value(v) for k, v in self.details.items()}

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this entry
        Hash includes all fields except current_hash
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'timestamp': self.timestamp.isoformat(),
            'actor_id': self.actor_id,
            'action': self.action,
            'details': self.details,
            'previous_hash': self.previous_hash
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        data = dict(data)
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return super().from_dict(data)


class AuditRecorder:
    """
    Append-only audit log with hash chaining
    """

    def __init__(self, storage: StorageInterface, table_name: str = "admin_audit_log"):
        self.storage = storage
        self.table_name = table_name
        self.logger = get_logger("nivalus.audit")
        self._lock = threading.Lock()

    def _chain_head(self) -> Tuple[int, str]:
        """Sequence and hash of the most recent stored entry"""
        records = self.storage.load_all(self.table_name)
        if not records:
            return 0, ""
        latest = max(records, key=lambda r: r.get('sequence', 0))
        return latest.get('sequence', 0), latest.get('current_hash', "")

    def record(
        self,
        action: Union[AuditAction, str],
        actor_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """
        Append an entry to the audit log

        Args:
            action: Audit tag
            actor_id: ID of the account that performed the action
            details: Structured payload

        Returns:
            Created AuditEntry
        """
        tag = action.value if isinstance(action, AuditAction) else str(action)
        # The head is read in the same unit as the append so recorders sharing a
        # database extend one chain
        with self._lock, self.storage.atomic():
            last_sequence, last_hash = self._chain_head()
            now = datetime.now(timezone.utc)
            entry = AuditEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=last_sequence + 1,
                actor_id=actor_id,
                action=tag,
                details=details or {},
                timestamp=now,
                previous_hash=last_hash,
                current_hash=""
            )
            entry.current_hash = entry.calculate_hash()

            self.storage.save(self.table_name, entry.id, entry.to_dict())

        self.logger.info(
            "Audit entry recorded",
            extra={"user_id": actor_id, "action": tag, "resource": f"audit:{entry.id}"}
        )
        return entry

    def get_entry(self, entry_id: str) -> Optional[AuditEntry]:
        """Get a specific audit entry by ID"""
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return AuditEntry.from_dict(data)
        return None

    def list_entries(
        self,
        actor_id: Optional[str] = None,
        action: Optional[Union[AuditAction, str]] = None,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        """
        Audit entries in chain order, optionally filtered

        Args:
            actor_id: Only entries by this actor
            action: Only entries with this tag
            limit: Keep only the most recent N entries
        """
        filters: Dict[str, Any] = {}
        if actor_id is not None:
            filters['actor_id'] = actor_id
        if action is not None:
            filters['action'] = action.value if isinstance(action, AuditAction) else action

        entries = [AuditEntry.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        entries.sort(key=lambda e: e.sequence)

        if limit:
            entries = entries[-limit:]
        return entries

    def count(self) -> int:
        """Get total number of audit entries"""
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result: Dict[str, Any] = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        entries = self.list_entries()
        result['total_entries'] = len(entries)

        previous_hash = ""
        for position, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result
