"""
Settings endpoints
"""

from typing import Any, Dict
from fastapi import APIRouter, Depends

from .dependencies import get_banking_core, require_actor, require_admin
from ..audit import ActorContext
from ..system import BankingCore


router = APIRouter()


@router.get("")
def get_settings(
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_actor)
) -> Dict[str, Any]:
    return core.get_settings().to_dict()


@router.put("")
def update_settings(
    changes: Dict[str, Any],
    core: BankingCore = Depends(get_banking_core),
    actor: ActorContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Update policy values (admin only); every value must be >= 0"""
    settings = core.update_settings(changes, actor=actor)
    return {"message": "Settings updated successfully", "settings": settings.to_dict()}
