"""
Translation of core error kinds into HTTP responses
"""

from typing import Dict, Type
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import (
    AlreadyExistsError, AuthenticationFailedError, BankingError, BelowMinimumBalanceError,
    ContentionError, InactiveAccountError, InsufficientFundsError, InvalidValueError,
    LimitExceededError, NotFoundError
)
from ..logging_config import get_logger


logger = get_logger("nivalus.api")


STATUS_CODES: Dict[Type[BankingError], int] = {
    NotFoundError: 404,
    AlreadyExistsError: 409,
    InsufficientFundsError: 400,
    BelowMinimumBalanceError: 400,
    LimitExceededError: 400,
    InvalidValueError: 400,
    InactiveAccountError: 409,
    AuthenticationFailedError: 401,
    ContentionError: 503,
}


def status_code_for(error: BankingError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers that turn core errors into JSON error bodies"""

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.warning(
                f"{exc.code} on {request.method} {request.url.path}",
                extra={"action": exc.code, "extra": exc.details}
            )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={
                "error": InvalidValueError.code,
                "message": message,
                "details": {"errors": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in errors
                ]}
            }
        )
