"""
Account management endpoints
"""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from starlette.concurrency import run_in_threadpool

from .dependencies import ensure_self_or_admin, get_actor, get_banking_core, require_actor, require_admin
from ..audit import ActorContext
from ..errors import InvalidValueError
from ..schemas import CreateAccountRequest, UpdateBalanceRequest, UpdateStatusRequest, VerifyPinRequest
from ..system import BankingCore


router = APIRouter()


def _avatar_too_large(limit: int) -> InvalidValueError:
    return InvalidValueError(
        f"Avatar exceeds the {limit} byte limit",
        details={"field": "data", "max_bytes": limit}
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    core: BankingCore = Depends(get_banking_core),
    actor: Optional[ActorContext] = Depends(get_actor)
) -> Dict[str, Any]:
    """Register a new account; only admins may set is_admin or an opening balance"""
    is_admin_actor = actor is not None and actor.is_admin
    if not is_admin_actor and (request.is_admin or request.balance is not None):
        raise HTTPException(status_code=403, detail="Admin access required")

    account = core.create_account(
        full_name=request.full_name,
        username=request.username,
        email=request.email,
        password=request.password,
        pin=request.pin,
        phone=request.phone,
        balance=request.balance,
        is_admin=request.is_admin,
        actor=actor
    )
    return {"message": "User registered successfully", "account": account.to_public_dict()}


@router.get("")
def list_accounts(
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> List[Dict[str, Any]]:
    """List all accounts (admin only)"""
    return [account.to_public_dict() for account in core.list_accounts()]


@router.get("/{account_id}")
def get_account(
    account_id: str,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    ensure_self_or_admin(actor, account_id)
    return core.get_account(account_id).to_public_dict()


@router.delete("/{account_id}")
def delete_account(
    account_id: str,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Delete an account and all of its transactions (admin only)"""
    removed = core.delete_account(account_id, actor=actor)
    return {"message": "User deleted successfully", "transactions_removed": removed}


@router.put("/{account_id}/status")
def update_account_status(
    account_id: str,
    request: UpdateStatusRequest,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    account = core.update_account_status(account_id, request.status, actor=actor)
    return account.to_public_dict()


@router.put("/{account_id}/balance")
def update_account_balance(
    account_id: str,
    request: UpdateBalanceRequest,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Override the stored balance without recording a transaction (admin only)"""
    account = core.update_account_balance(account_id, request.balance, actor=actor)
    return account.to_public_dict()


@router.get("/{account_id}/transactions")
def list_account_transactions(
    account_id: str,
    limit: Optional[int] = Query(None, ge=0),
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> List[Dict[str, Any]]:
    ensure_self_or_admin(actor, account_id)
    return [txn.to_dict() for txn in core.list_transactions(account_id, limit=limit)]


@router.post("/{account_id}/verify-pin")
def verify_pin(
    account_id: str,
    request: VerifyPinRequest,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    """Users can only verify their own PIN"""
    if actor.actor_id != account_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return {"valid": core.verify_pin(account_id, request.pin)}


@router.put("/{account_id}/avatar")
async def upload_avatar(
    account_id: str,
    request: Request,
    filename: str = Query(..., description="Original file name, used for the extension"),
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    """Store the raw request body as the account's avatar"""
    ensure_self_or_admin(actor, account_id)
    limit = core.config.avatar_max_bytes

    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise _avatar_too_large(limit)

    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > limit:
            raise _avatar_too_large(limit)

    account = await run_in_threadpool(core.set_avatar, account_id, bytes(data), filename)
    return {"message": "Avatar uploaded successfully.", "avatar_url": account.avatar_url}


@router.delete("/{account_id}/avatar")
def remove_avatar(
    account_id: str,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    ensure_self_or_admin(actor, account_id)
    core.remove_avatar(account_id)
    return {"message": "Avatar removed successfully."}
