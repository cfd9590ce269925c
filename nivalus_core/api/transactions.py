"""
Transaction endpoints
"""

from typing import Any, Dict, List
from fastapi import APIRouter, Depends, status

from .dependencies import ensure_self_or_admin, get_banking_core, require_actor, require_admin
from ..audit import ActorContext
from ..schemas import ApplyTransactionRequest
from ..system import BankingCore


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transaction(
    request: ApplyTransactionRequest,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    """Apply a transaction to the caller's own account, or any account for admins"""
    ensure_self_or_admin(actor, request.account_id)
    transaction = core.apply_transaction(
        request.account_id,
        request.transaction_type,
        request.amount,
        description=request.description,
        timestamp=request.timestamp,
        recipient_details=request.recipient_details,
        actor=actor
    )
    return {
        "message": "Transaction created successfully",
        "transaction": transaction.to_dict(),
        "new_balance": str(transaction.balance_after)
    }


@router.get("")
def list_all_transactions(
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> List[Dict[str, Any]]:
    """All transactions with owner identity (admin only)"""
    return [listing.to_dict() for listing in core.list_all_transactions()]


@router.delete("/{transaction_id}")
def reverse_transaction(
    transaction_id: str,
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Reverse a transaction and restore the balance (admin only)"""
    core.reverse_transaction(transaction_id, actor=actor)
    return {"message": "Transaction deleted successfully"}
