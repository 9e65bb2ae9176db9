"""
Authentication API endpoints.

Credentials are handled by the identity provider that issues tokens; this
service only resolves a bearer token to an actor and can revoke it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.schemas.auth import ActorResponse, LogoutResponse
from dispatch_backend.app.core.dependencies import Actor, get_bearer_token, get_current_actor
from dispatch_backend.app.core.guards import is_privileged
from dispatch_backend.app.core.token_revocation import revoke_token
from dispatch_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=ActorResponse)
async def get_current_actor_info(actor: Actor = Depends(get_current_actor)):
    """
    Get the actor the bearer token resolves to.

    Roles come from the database, not from the token.
    """
    return ActorResponse(
        id=actor.id,
        username=actor.username,
        roles=sorted(actor.roles, key=lambda role: role.value),
        is_privileged=is_privileged(actor),
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    token: str = Depends(get_bearer_token),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented token until it would have expired anyway."""
    revoked = await revoke_token(token, actor.id)

    if revoked:
        await log_event(
            db=db,
            action=AuditAction.TOKEN_REVOKED,
            actor_id=actor.id,
            actor_username=actor.username,
            target_user_id=actor.id,
        )

    return LogoutResponse(ok=True, revoked=revoked)
