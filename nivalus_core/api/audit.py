"""
Audit log endpoints (admin only)
"""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query

from .dependencies import get_banking_core, require_admin
from ..audit import ActorContext
from ..system import BankingCore


router = APIRouter()


@router.get("")
def list_audit_entries(
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> List[Dict[str, Any]]:
    entries = core.list_audit_entries(actor_id=actor_id, action=action, limit=limit)
    return [entry.to_dict() for entry in entries]


@router.get("/verify")
def verify_audit_integrity(
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    return core.verify_audit_integrity()
