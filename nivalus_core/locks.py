"""
Account Lock Module

Per-account locks that serialize the read-check-write sequence of every
balance mutation on the same account. Acquisition waits at most
``timeout_seconds``; callers that cannot get the lock receive a
ContentionError instead of hanging.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Optional

from .errors import ContentionError
from .logging_config import get_logger


class AccountLockManager:
    """Registry of per-account locks with bounded wait"""

    def __init__(self, timeout_seconds: float = 5.0):
        if timeout_seconds <= 0:
            raise ValueError("Lock timeout must be positive")
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self.logger = get_logger("nivalus.locks")

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str, timeout_seconds: Optional[float] = None):
        """
        Hold the lock for one account for the duration of the block

        Raises:
            ContentionError: If the lock is not acquired within the timeout
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        lock = self._lock_for(account_id)
        if not lock.acquire(timeout=timeout):
            self.logger.warning(
                "Account lock wait timed out",
                extra={"resource": f"account:{account_id}", "extra": {"timeout_seconds": timeout}}
            )
            raise ContentionError(
                f"Account {account_id} is busy, try again",
                details={"account_id": account_id, "timeout_seconds": timeout}
            )
        try:
            yield
        finally:
            lock.release()

    def forget(self, account_id: str) -> None:
        """Drop the lock entry of a deleted account"""
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is not None and not lock.locked():
                del self._locks[account_id]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
