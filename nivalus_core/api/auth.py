"""
Login endpoint

Checks credentials only; session or token issuance is left to the
upstream auth layer, which then asserts identity via X-Actor-* headers.
"""

from typing import Any, Dict
from fastapi import APIRouter, Depends

from .dependencies import ADMIN_ROLE, get_banking_core
from ..schemas import LoginRequest
from ..system import BankingCore


router = APIRouter()


@router.post("")
def login(
    request: LoginRequest,
    core: BankingCore = Depends(get_banking_core)
) -> Dict[str, Any]:
    account = core.authenticate(request.username, request.password)
    return {
        "message": "Login successful",
        "account": account.to_public_dict(),
        "role": ADMIN_ROLE if account.is_admin else "user"
    }
