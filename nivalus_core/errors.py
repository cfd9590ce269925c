"""
Error Kinds Module

Typed errors surfaced by the core. Every error is terminal for the single
operation that raised it; callers translate ``code`` into their own
transport-level responses.
"""

from typing import Any, Dict, Optional


class BankingError(Exception):
    """Base class for all core errors"""

    code = "banking_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(BankingError):
    """Referenced account, transaction or settings row is absent"""

    code = "not_found"


class AlreadyExistsError(BankingError):
    """Uniqueness violation on account creation"""

    code = "already_exists"


class InsufficientFundsError(BankingError):
    """Debit would drive the balance negative"""

    code = "insufficient_funds"


class BelowMinimumBalanceError(BankingError):
    """Debit would breach the configured balance floor"""

    code = "below_minimum_balance"


class LimitExceededError(BankingError):
    """Amount exceeds a configured transaction ceiling"""

    code = "limit_exceeded"


class InvalidValueError(BankingError, ValueError):
    """Malformed input: bad amount, negative setting, unknown enum value"""

    code = "invalid_value"


class InactiveAccountError(BankingError):
    """Operation attempted against a non-Active account"""

    code = "inactive_account"


class ContentionError(BankingError):
    """Unit of work could not start within the bounded lock wait"""

    code = "contention"


class AuthenticationFailedError(BankingError):
    """Credentials did not match an active account"""

    code = "authentication_failed"
