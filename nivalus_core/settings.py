"""
Settings Store Module

Global numeric policy values applied to transaction validation. The record
is a singleton, read on every transaction and written rarely by admins.
Readers receive an immutable snapshot; a writer validates the complete new
record, persists it, then swaps the snapshot in one assignment, so a reader
sees either the old record or the new one and never a mix.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
import threading

from .config import NivalusConfig, get_config
from .errors import InvalidValueError
from .logging_config import get_logger, log_action
from .money import to_amount, ZERO
from .storage import StorageInterface


SETTINGS_RECORD_ID = "global"


@dataclass(frozen=True)
class Settings:
    """Policy thresholds; every value is >= 0"""
    minimum_balance: Decimal
    max_transaction_limit: Decimal
    daily_transaction_limit: Decimal
    transaction_fee: Decimal
    updated_at: Optional[datetime] = None

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls) if f.name != "updated_at"]

    @classmethod
    def defaults(cls, config: NivalusConfig) -> 'Settings':
        return cls(
            minimum_balance=to_amount(config.default_minimum_balance, "minimum_balance"),
            max_transaction_limit=to_amount(config.default_max_transaction_limit, "max_transaction_limit"),
            daily_transaction_limit=to_amount(config.default_daily_transaction_limit, "daily_transaction_limit"),
            transaction_fee=to_amount(config.default_transaction_fee, "transaction_fee"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {name: str(getattr(self, name)) for name in self.field_names()}
        result["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        updated_at = data.get("updated_at")
        return cls(
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            **{name: Decimal(data[name]) for name in cls.field_names()}
        )


class SettingsStore:
    """
    Singleton settings record with lazy default materialization
    """

    def __init__(
        self,
        storage: StorageInterface,
        config: Optional[NivalusConfig] = None,
        table_name: str = "settings"
    ):
        self.storage = storage
        self.config = config or get_config()
        self.table_name = table_name
        self.logger = get_logger("nivalus.settings")
        self._write_lock = threading.Lock()
        self._snapshot: Optional[Settings] = None

    def get(self) -> Settings:
        """
        Current settings

        The first read loads the stored row, or writes the configured
        defaults when none exists yet.
        """
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot

        with self._write_lock:
            if self._snapshot is None:
                self._snapshot = self._load_or_create()
            return self._snapshot

    def update(self, changes: Mapping[str, Any]) -> Settings:
        """
        Replace some or all policy values

        Args:
            changes: Mapping of setting name to a numeric value >= 0

        Returns:
            The new settings record

        Raises:
            InvalidValueError: On an unknown name or a non-numeric/negative
                value; nothing is written in that case
        """
        allowed = Settings.field_names()
        unknown = sorted(set(changes) - set(allowed))
        if unknown:
            raise InvalidValueError(
                f"Unknown settings: {', '.join(unknown)}",
                details={"allowed": allowed}
            )

        parsed: Dict[str, Decimal] = {}
        for name, value in changes.items():
            amount = to_amount(value, name)
            if amount < ZERO:
                raise InvalidValueError(
                    f"Invalid {name}. Must be a positive number.",
                    details={"field": name}
                )
            parsed[name] = amount

        with self._write_lock:
            current = self._snapshot or self._load_or_create()
            updated = replace(current, updated_at=datetime.now(timezone.utc), **parsed)
            with self.storage.atomic():
                self.storage.save(self.table_name, SETTINGS_RECORD_ID, updated.to_dict())
            self._snapshot = updated

        log_action(
            self.logger, "info", "Settings updated",
            action="update_settings", resource="settings",
            extra={name: str(value) for name, value in parsed.items()}
        )
        return updated

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next read goes to storage"""
        with self._write_lock:
            self._snapshot = None

    def _load_or_create(self) -> Settings:
        data = self.storage.load(self.table_name, SETTINGS_RECORD_ID)
        if data:
            return Settings.from_dict(data)

        settings = replace(Settings.defaults(self.config), updated_at=datetime.now(timezone.utc))
        self.storage.save(self.table_name, SETTINGS_RECORD_ID, settings.to_dict())
        self.logger.info("Default settings materialized", extra={"extra": settings.to_dict()})
        return settings
