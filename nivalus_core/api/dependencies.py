"""
Request dependencies: the banking core and the acting identity
"""

from typing import Optional
from fastapi import Depends, Header, HTTPException, Request

from ..audit import ActorContext
from ..system import BankingCore


ADMIN_ROLE = "admin"


def get_banking_core(request: Request) -> BankingCore:
    core = getattr(request.app.state, "core", None)
    if core is None:
        raise HTTPException(status_code=503, detail="Banking core not initialized")
    return core


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None)
) -> Optional[ActorContext]:
    """
    Acting identity asserted by the trusted upstream auth layer

    Returns None when no identity header is present.
    """
    if not x_actor_id:
        return None
    return ActorContext(
        actor_id=x_actor_id,
        is_admin=(x_actor_role or "").strip().lower() == ADMIN_ROLE
    )


def require_actor(actor: Optional[ActorContext] = Depends(get_actor)) -> ActorContext:
    if actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return actor


def require_admin(actor: ActorContext = Depends(require_actor)) -> ActorContext:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor


def ensure_self_or_admin(actor: ActorContext, account_id: str) -> None:
    """Users may only act on their own account; admins on any"""
    if not actor.is_admin and actor.actor_id != account_id:
        raise HTTPException(status_code=403, detail="Access denied")
