"""
Ride share API endpoints.

Dispatchers offer rides to driver groups; drivers read their inbox and
queue claims through the shares that reach them.
"""

from typing import List, Literal

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.ride_group_share import RideGroupShare, as_utc
from dispatch_backend.app.schemas.ride_claim import ClaimQueuedResponse
from dispatch_backend.app.schemas.ride_share import (
    InboxCount,
    InboxItem,
    ShareActionResponse,
    ShareCreate,
    ShareResponse,
    ShareUpdate,
    ShareWindow,
)
from dispatch_backend.app.core.dependencies import Actor, get_current_actor
from dispatch_backend.app.core.guards import assert_can_access_ride, require_privileged, require_role
from dispatch_backend.app.services import ride_sharing
from dispatch_backend.app.services.ride_claims import queue_claim
from dispatch_backend.app.services.ride_queries import driver_inbox, inbox_count
from dispatch_backend.app.services.ride_workflow import get_ride_or_404, utcnow
from dispatch_backend.app.services.audit import log_event, AuditAction

router = APIRouter(tags=["Ride Shares"])

require_driver = require_role([UserRole.DRIVER])


def build_share_response(share: RideGroupShare) -> ShareResponse:
    """Share with its expiry applied to `status`."""
    window = None
    if share.starts_at or share.ends_at:
        window = ShareWindow(starts_at=as_utc(share.starts_at), ends_at=as_utc(share.ends_at))
    return ShareResponse(
        id=share.id,
        ride_id=share.ride_id,
        group_id=share.group_id,
        exclusive=share.exclusive,
        priority=share.priority,
        window=window,
        status=share.effective_status(utcnow()),
        revoked_at=as_utc(share.revoked_at),
        created_by=share.created_by,
        created_at=share.created_at,
    )


@router.post("/rides/{ride_id}/shares", response_model=ShareActionResponse, status_code=status.HTTP_201_CREATED)
async def create_share(
    share_data: ShareCreate,
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """
    Share an unassigned ride with a driver group (dispatcher/admin only).

    A ride can be shared with each group once; change the existing share
    with PATCH /ride-shares/{share_id} instead.
    """
    share = await ride_sharing.create_share(
        db,
        ride_id,
        share_data.group_id,
        actor,
        exclusive=share_data.exclusive,
        priority=share_data.priority,
        window=share_data.window,
    )

    await log_event(
        db=db,
        action=AuditAction.SHARE_CREATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={
            "ride_id": ride_id,
            "share_id": share.id,
            "group_id": share.group_id,
            "exclusive": share.exclusive,
            "priority": share.priority,
        }
    )

    response = build_share_response(share)
    return ShareActionResponse(status=response.status, share=response)


@router.get("/rides/{ride_id}/shares", response_model=List[ShareResponse])
async def list_active_shares(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Active shares of a ride whose window is open, highest priority first."""
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    shares = await ride_sharing.list_active_shares(db, ride_id)
    return [build_share_response(share) for share in shares]


@router.get("/rides/{ride_id}/shares/revoked", response_model=List[ShareResponse])
async def list_revoked_shares(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Revoked shares of a ride."""
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    shares = await ride_sharing.list_revoked_shares(db, ride_id)
    return [build_share_response(share) for share in shares]


@router.get("/ride-shares/inbox", response_model=List[InboxItem])
async def get_inbox(
    tab: Literal["available", "claimed"] = Query("available"),
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """
    Driver inbox.

    - available: unassigned rides offered to the driver's groups
    - claimed: rides assigned to the driver
    """
    return await driver_inbox(db, actor.id, tab)


@router.get("/ride-shares/inbox/count", response_model=InboxCount)
async def get_inbox_count(
    tab: Literal["available", "claimed"] = Query("available"),
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """Badge counter for the driver inbox."""
    return InboxCount(tab=tab, count=await inbox_count(db, actor.id, tab))


@router.patch("/ride-shares/{share_id}", response_model=ShareActionResponse)
async def update_share(
    update_data: ShareUpdate,
    share_id: int = Path(..., description="Share ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Change priority, exclusivity or window, or reactivate a revoked share."""
    share = await ride_sharing.update_share(
        db,
        share_id,
        exclusive=update_data.exclusive,
        priority=update_data.priority,
        window=update_data.window,
        reactivate=update_data.reactivate,
    )

    await log_event(
        db=db,
        action=AuditAction.SHARE_UPDATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={
            "ride_id": share.ride_id,
            "share_id": share.id,
            "fields": sorted(update_data.model_dump(exclude_unset=True)),
        }
    )

    response = build_share_response(share)
    return ShareActionResponse(status=response.status, share=response)


@router.delete("/ride-shares/{share_id}", response_model=ShareActionResponse)
async def revoke_share(
    share_id: int = Path(..., description="Share ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Revoke a share. Revoking twice is a no-op."""
    share, changed = await ride_sharing.revoke_share(db, share_id)

    if changed:
        await log_event(
            db=db,
            action=AuditAction.SHARE_REVOKED,
            actor_id=actor.id,
            actor_username=actor.username,
            metadata={"ride_id": share.ride_id, "share_id": share.id, "group_id": share.group_id}
        )

    response = build_share_response(share)
    return ShareActionResponse(status=response.status, share=response)


@router.post("/ride-shares/{share_id}/claim", response_model=ClaimQueuedResponse, status_code=status.HTTP_201_CREATED)
async def claim_share(
    share_id: int = Path(..., description="Share ID"),
    actor: Actor = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """Queue a claim on the ride behind a share (drivers in the share's group)."""
    claim = await queue_claim(db, share_id, actor)

    await log_event(
        db=db,
        action=AuditAction.CLAIM_QUEUED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": claim.ride_id, "share_id": share_id, "claim_id": claim.id}
    )

    return ClaimQueuedResponse(
        status=claim.status,
        claim_id=claim.id,
        ride_id=claim.ride_id,
        share_id=share_id,
    )
