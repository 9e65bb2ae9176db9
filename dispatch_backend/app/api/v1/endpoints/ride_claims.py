"""
Ride claim API endpoints.

The ride's creator or a dispatcher reviews queued claims; a claimant can
withdraw their own queued claim.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.ride_enums import RideClaimStatus
from dispatch_backend.app.schemas.ride_claim import ClaimActionResponse, ClaimResponse
from dispatch_backend.app.core.dependencies import Actor, get_current_actor
from dispatch_backend.app.core.guards import require_role
from dispatch_backend.app.services import ride_claims
from dispatch_backend.app.services.ride_queries import list_claims, list_driver_claims
from dispatch_backend.app.services.audit import log_event, AuditAction

router = APIRouter(tags=["Ride Claims"])


@router.get("/rides/{ride_id}/claims", response_model=List[ClaimResponse])
async def get_ride_claims(
    ride_id: int = Path(..., description="Ride ID"),
    status_filter: Optional[RideClaimStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Claims on a ride, oldest first (creator or dispatcher/admin)."""
    claims = await list_claims(db, ride_id, actor, status=status_filter)
    return [ClaimResponse.model_validate(claim) for claim in claims]


@router.post("/rides/{ride_id}/claims/{claim_id}/approve", response_model=ClaimActionResponse)
async def approve_claim(
    ride_id: int = Path(..., description="Ride ID"),
    claim_id: int = Path(..., description="Claim ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Approve a queued claim.

    Assigns the claimant, rejects every other queued claim and revokes the
    ride's active shares. Returns 409 if the ride was taken concurrently.
    """
    ride, claim, rejected = await ride_claims.approve_claim(db, ride_id, claim_id, actor)

    await log_event(
        db=db,
        action=AuditAction.CLAIM_APPROVED,
        actor_id=actor.id,
        actor_username=actor.username,
        target_user_id=claim.driver_id,
        metadata={"ride_id": ride.id, "claim_id": claim.id, "rejected_claims": rejected}
    )

    return ClaimActionResponse(
        status=ride.status.value,
        claim_id=claim.id,
        ride_id=ride.id,
        claim_status=claim.status,
        assigned_driver_id=ride.assigned_driver_id,
    )


@router.post("/rides/{ride_id}/claims/{claim_id}/reject", response_model=ClaimActionResponse)
async def reject_claim(
    ride_id: int = Path(..., description="Ride ID"),
    claim_id: int = Path(..., description="Claim ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Reject a queued claim."""
    claim = await ride_claims.reject_claim(db, ride_id, claim_id, actor)

    await log_event(
        db=db,
        action=AuditAction.CLAIM_REJECTED,
        actor_id=actor.id,
        actor_username=actor.username,
        target_user_id=claim.driver_id,
        metadata={"ride_id": ride_id, "claim_id": claim.id}
    )

    return ClaimActionResponse(
        status=claim.status.value,
        claim_id=claim.id,
        ride_id=ride_id,
        claim_status=claim.status,
    )


@router.delete("/rides/{ride_id}/claims/{claim_id}", response_model=ClaimActionResponse)
async def withdraw_claim(
    ride_id: int = Path(..., description="Ride ID"),
    claim_id: int = Path(..., description="Claim ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw the caller's own queued claim."""
    claim = await ride_claims.withdraw_claim(db, ride_id, claim_id, actor)

    await log_event(
        db=db,
        action=AuditAction.CLAIM_WITHDRAWN,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": ride_id, "claim_id": claim.id}
    )

    return ClaimActionResponse(
        status=claim.status.value,
        claim_id=claim.id,
        ride_id=ride_id,
        claim_status=claim.status,
    )


@router.get("/ride-claims/mine", response_model=List[ClaimResponse])
async def get_my_claims(
    status_filter: Optional[RideClaimStatus] = Query(None, alias="status"),
    actor: Actor = Depends(require_role([UserRole.DRIVER])),
    db: AsyncSession = Depends(get_db)
):
    """The calling driver's claims, newest first."""
    claims = await list_driver_claims(db, actor.id, status=status_filter)
    return [ClaimResponse.model_validate(claim) for claim in claims]
