"""
Pydantic request models validated at the core boundary
"""

from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .accounts import AccountStatus
from .errors import InvalidValueError
from .transactions import TransactionType


RequestT = TypeVar("RequestT", bound=BaseModel)


def parse_request(model: Type[RequestT], data: Mapping[str, Any]) -> RequestT:
    """
    Validate raw input against a request model

    Raises:
        InvalidValueError: With the pydantic error list under ``details["errors"]``
    """
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        field_name = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        raise InvalidValueError(
            f"{field_name}: {message}" if field_name else message,
            details={"errors": errors}
        ) from e


class ApplyTransactionRequest(BaseModel):
    account_id: str = Field(..., min_length=1)
    transaction_type: TransactionType = Field(..., description="Deposit, Withdrawal, Transfer or Bill Pay")
    amount: Decimal = Field(..., description="Positive amount")
    description: Optional[str] = Field(None, max_length=255)
    timestamp: Optional[datetime] = None
    recipient_details: Optional[Dict[str, Any]] = None

    @field_validator("transaction_type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> TransactionType:
        return TransactionType.parse(value)


class CreateAccountRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1)
    pin: str = Field(..., min_length=1)
    phone: Optional[str] = None
    balance: Optional[Decimal] = Field(None, ge=0)
    is_admin: bool = False


class UpdateStatusRequest(BaseModel):
    status: AccountStatus

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> AccountStatus:
        return AccountStatus.parse(value)


class UpdateBalanceRequest(BaseModel):
    balance: Decimal = Field(..., ge=0)


class UpdateSettingsRequest(BaseModel):
    """Partial settings update; range checks happen in the settings store"""
    model_config = ConfigDict(extra="forbid")

    minimum_balance: Optional[Decimal] = None
    max_transaction_limit: Optional[Decimal] = None
    daily_transaction_limit: Optional[Decimal] = None
    transaction_fee: Optional[Decimal] = None

    def changes(self) -> Dict[str, Decimal]:
        return self.model_dump(exclude_none=True)


class LoginRequest(BaseModel):
    username: str
    password: str


class VerifyPinRequest(BaseModel):
    pin: str
