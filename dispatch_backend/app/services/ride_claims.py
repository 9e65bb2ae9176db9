"""
Ride claim service.

Drivers queue claims through shares; the ride's creator or a dispatcher
approves one of them. Approval is a single transaction:

1. conditional ride update (unassigned, no driver -> assigned, claimant)
2. conditional claim update (queued -> approved)
3. every other queued claim of the ride -> rejected
4. every active share of the ride -> revoked

A zero-row update at step 1 or 2 means a concurrent writer won; the
transaction is rolled back and the caller gets a Conflict.
"""

import logging
from typing import Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from dispatch_backend.app.core.guards import assert_can_access_ride
from dispatch_backend.app.models.group import GroupMember
from dispatch_backend.app.models.ride import Ride
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.ride_enums import RideClaimStatus, RideStatus
from dispatch_backend.app.services.ride_sharing import get_ride_shares, get_share_or_404, visible_shares
from dispatch_backend.app.services.ride_workflow import (
    assert_open_for_offers,
    close_ride_offers,
    get_ride_or_404,
    utcnow,
)

logger = logging.getLogger("dispatch.claims")


async def get_ride_claim_or_404(db: AsyncSession, ride_id: int, claim_id: int) -> RideClaim:
    """Load a claim and check it belongs to the ride."""
    result = await db.execute(select(RideClaim).where(RideClaim.id == claim_id))
    claim = result.scalar_one_or_none()
    if not claim or claim.ride_id != ride_id:
        raise ResourceNotFoundError("RideClaim", claim_id)
    return claim


def _require_queued(claim: RideClaim) -> None:
    if claim.status != RideClaimStatus.QUEUED:
        raise ConflictError(
            f"Claim is already {claim.status.value}",
            details={"claim_id": claim.id, "status": claim.status.value},
        )


async def queue_claim(db: AsyncSession, share_id: int, driver: Actor) -> RideClaim:
    """
    Queue the driver's claim on the ride behind a share.

    Raises:
        ResourceNotFoundError: share missing, revoked, expired, outside its
            window or shadowed by an exclusive share
        InsufficientPermissionsError: driver is not in the share's group
        ConflictError: ride already has a driver or an approved claim, or the
            driver already has a queued claim on it
    """
    share = await get_share_or_404(db, share_id)
    ride_id = share.ride_id

    now = utcnow()
    open_ids = {s.id for s in visible_shares(await get_ride_shares(db, ride_id), now)}
    if share.id not in open_ids:
        raise ResourceNotFoundError("RideShare", share_id, message="Share is not open for claims")

    member_result = await db.execute(
        select(GroupMember).where(
            GroupMember.group_id == share.group_id,
            GroupMember.user_id == driver.id,
        )
    )
    if not member_result.scalar_one_or_none():
        raise InsufficientPermissionsError("Driver is not a member of the share's group")

    ride = await get_ride_or_404(db, ride_id)
    await assert_open_for_offers(db, ride)

    claim = RideClaim(
        ride_id=ride_id,
        share_id=share_id,
        driver_id=driver.id,
        status=RideClaimStatus.QUEUED,
    )
    db.add(claim)
    try:
        await db.flush()  # One queued claim per (ride, driver) is enforced here
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Driver already has a queued claim for this ride",
            details={"ride_id": ride_id, "driver_id": driver.id},
        )

    await db.commit()
    await db.refresh(claim)

    logger.info("claim queued", extra={"claim_id": claim.id, "ride_id": ride_id, "driver_id": driver.id})
    return claim


async def approve_claim(
    db: AsyncSession,
    ride_id: int,
    claim_id: int,
    actor: Actor,
) -> Tuple[Ride, RideClaim, int]:
    """
    Approve a queued claim and assign its driver to the ride.

    Returns:
        (ride, claim, rejected_claims)
    """
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    claim = await get_ride_claim_or_404(db, ride_id, claim_id)
    _require_queued(claim)
    driver_id = claim.driver_id
    now = utcnow()

    ride_result = await db.execute(
        update(Ride)
        .where(
            Ride.id == ride_id,
            Ride.status == RideStatus.UNASSIGNED,
            Ride.assigned_driver_id.is_(None),
        )
        .values(status=RideStatus.ASSIGNED, assigned_driver_id=driver_id)
        .execution_options(synchronize_session=False)
    )
    if ride_result.rowcount == 0:
        await db.rollback()
        logger.warning("approval lost race on ride", extra={"ride_id": ride_id, "claim_id": claim_id})
        raise ConflictError("Ride already has a driver", details={"ride_id": ride_id, "claim_id": claim_id})

    try:
        claim_result = await db.execute(
            update(RideClaim)
            .where(RideClaim.id == claim_id, RideClaim.status == RideClaimStatus.QUEUED)
            .values(status=RideClaimStatus.APPROVED, decided_at=now, decided_by_id=actor.id)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        # Second approved claim for the ride
        await db.rollback()
        raise ConflictError("Ride already has an approved claim", details={"ride_id": ride_id, "claim_id": claim_id})
    if claim_result.rowcount == 0:
        await db.rollback()
        logger.warning("approval lost race on claim", extra={"ride_id": ride_id, "claim_id": claim_id})
        raise ConflictError("Claim is no longer queued", details={"ride_id": ride_id, "claim_id": claim_id})

    rejected, revoked = await close_ride_offers(db, ride_id, actor.id, now, keep_claim_id=claim_id)
    await db.commit()
    await db.refresh(ride)
    await db.refresh(claim)

    logger.info(
        "claim approved",
        extra={
            "ride_id": ride_id,
            "claim_id": claim_id,
            "driver_id": driver_id,
            "rejected_claims": rejected,
            "revoked_shares": revoked,
        },
    )
    return ride, claim, rejected


async def _decide_claim(
    db: AsyncSession,
    claim: RideClaim,
    new_status: RideClaimStatus,
    actor: Actor,
) -> RideClaim:
    """Move a queued claim to a final status by conditional update."""
    claim_id = claim.id
    result = await db.execute(
        update(RideClaim)
        .where(RideClaim.id == claim_id, RideClaim.status == RideClaimStatus.QUEUED)
        .values(status=new_status, decided_at=utcnow(), decided_by_id=actor.id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Claim is no longer queued", details={"claim_id": claim_id})

    await db.commit()
    await db.refresh(claim)
    return claim


async def reject_claim(db: AsyncSession, ride_id: int, claim_id: int, actor: Actor) -> RideClaim:
    """Reject a queued claim. The ride is untouched."""
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    claim = await get_ride_claim_or_404(db, ride_id, claim_id)
    _require_queued(claim)

    claim = await _decide_claim(db, claim, RideClaimStatus.REJECTED, actor)
    logger.info("claim rejected", extra={"ride_id": ride_id, "claim_id": claim_id})
    return claim


async def withdraw_claim(db: AsyncSession, ride_id: int, claim_id: int, actor: Actor) -> RideClaim:
    """Withdraw the actor's own queued claim."""
    claim = await get_ride_claim_or_404(db, ride_id, claim_id)
    if claim.driver_id != actor.id:
        raise InsufficientPermissionsError("Only the claiming driver can withdraw a claim")
    _require_queued(claim)

    claim = await _decide_claim(db, claim, RideClaimStatus.WITHDRAWN, actor)
    logger.info("claim withdrawn", extra={"ride_id": ride_id, "claim_id": claim_id})
    return claim
