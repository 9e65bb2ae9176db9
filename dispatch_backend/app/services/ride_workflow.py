"""
Ride workflow service.

Ride CRUD, direct driver assignment, unassignment and status progression.

Every assignment-affecting write is a conditional UPDATE whose affected-row
count decides success; the ride row is the serialization point shared with
claim approval.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from dispatch_backend.app.core.guards import assert_can_access_ride, is_privileged
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.ride import Ride
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.ride_enums import (
    FORWARD_STATUSES,
    STATUS_FLOW,
    RideClaimStatus,
    RideStatus,
    ShareStatus,
)
from dispatch_backend.app.models.ride_group_share import RideGroupShare, as_utc
from dispatch_backend.app.models.user import User
from dispatch_backend.app.schemas.ride import RideCreate, RideUpdate

logger = logging.getLogger("dispatch.rides")

# Embedded documents stored as JSON
_EMBEDDED_FIELDS = ("customer", "payment")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ride_values(payload, exclude_unset: bool = False) -> dict:
    """Flatten a ride payload into column values."""
    values = payload.model_dump(exclude_unset=exclude_unset)
    for name in _EMBEDDED_FIELDS:
        if name in values:
            document = getattr(payload, name)
            values[name] = document.model_dump(mode="json") if document is not None else None
    if values.get("scheduled_at") is not None:
        values["scheduled_at"] = as_utc(values["scheduled_at"])
    return values


async def get_ride_or_404(db: AsyncSession, ride_id: int) -> Ride:
    result = await db.execute(select(Ride).where(Ride.id == ride_id))
    ride = result.scalar_one_or_none()
    if not ride:
        raise ResourceNotFoundError("Ride", ride_id)
    return ride


async def assert_open_for_offers(db: AsyncSession, ride: Ride) -> None:
    """
    Refuse to offer a ride to drivers unless a claim on it could still be approved.

    A ride that was unassigned after an approval keeps its approved claim as
    history, so it can only be redispatched through `assign_driver`.

    Raises:
        ConflictError: ride has a driver, or already has an approved claim
    """
    if ride.status != RideStatus.UNASSIGNED or ride.assigned_driver_id is not None:
        raise ConflictError(
            "Ride already has a driver",
            details={"ride_id": ride.id, "status": ride.status.value},
        )
    result = await db.execute(
        select(RideClaim.id).where(
            RideClaim.ride_id == ride.id,
            RideClaim.status == RideClaimStatus.APPROVED,
        )
    )
    approved_claim_id = result.scalars().first()
    if approved_claim_id is not None:
        raise ConflictError(
            "Ride already has an approved claim; assign a driver directly",
            details={"ride_id": ride.id, "claim_id": approved_claim_id},
        )


async def close_ride_offers(
    db: AsyncSession,
    ride_id: int,
    decided_by_id: int,
    now: datetime,
    keep_claim_id: Optional[int] = None,
) -> Tuple[int, int]:
    """
    Reject the ride's queued claims and revoke its active shares.

    Runs inside the caller's transaction once the ride has been taken.

    Returns:
        (rejected_claims, revoked_shares)
    """
    claim_filter = [RideClaim.ride_id == ride_id, RideClaim.status == RideClaimStatus.QUEUED]
    if keep_claim_id is not None:
        claim_filter.append(RideClaim.id != keep_claim_id)

    rejected = await db.execute(
        update(RideClaim)
        .where(*claim_filter)
        .values(status=RideClaimStatus.REJECTED, decided_at=now, decided_by_id=decided_by_id)
        .execution_options(synchronize_session=False)
    )
    revoked = await db.execute(
        update(RideGroupShare)
        .where(RideGroupShare.ride_id == ride_id, RideGroupShare.status == ShareStatus.ACTIVE)
        .values(status=ShareStatus.REVOKED, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return rejected.rowcount, revoked.rowcount


async def create_ride(db: AsyncSession, actor: Actor, payload: RideCreate) -> Ride:
    """Create a ride owned by the actor. Rides always start unassigned."""
    ride = Ride(
        **_ride_values(payload),
        creator_id=actor.id,
        assigned_driver_id=None,
        status=RideStatus.UNASSIGNED,
    )
    db.add(ride)
    await db.commit()
    await db.refresh(ride)

    logger.info("ride created", extra={"ride_id": ride.id, "creator_id": actor.id})
    return ride


async def update_ride(db: AsyncSession, ride_id: int, actor: Actor, payload: RideUpdate) -> Ride:
    """Edit descriptive ride fields (creator or dispatcher/admin)."""
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    for name, value in _ride_values(payload, exclude_unset=True).items():
        if name in ("from_address", "to_address", "scheduled_at", "type", "stops") and value is None:
            raise BusinessValidationError(f"Field '{name}' cannot be null")
        setattr(ride, name, value)

    await db.commit()
    await db.refresh(ride)
    return ride


async def delete_ride(db: AsyncSession, ride_id: int, actor: Actor) -> Tuple[int, int]:
    """
    Delete a ride together with its claims and shares in one transaction.

    Returns:
        (deleted_claims, deleted_shares)
    """
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    claims = await db.execute(delete(RideClaim).where(RideClaim.ride_id == ride_id))
    shares = await db.execute(delete(RideGroupShare).where(RideGroupShare.ride_id == ride_id))
    await db.delete(ride)
    await db.commit()

    logger.info(
        "ride deleted",
        extra={"ride_id": ride_id, "claims": claims.rowcount, "shares": shares.rowcount},
    )
    return claims.rowcount, shares.rowcount


async def assign_driver(db: AsyncSession, ride_id: int, driver_id: int, actor: Actor) -> Ride:
    """
    Directly assign a driver to an unassigned ride.

    In the same transaction every queued claim on the ride is rejected and
    every active share revoked.

    Raises:
        ResourceNotFoundError: ride or driver missing
        InsufficientPermissionsError: actor is neither creator nor dispatcher/admin
        BusinessValidationError: target user is inactive or not a driver
        ConflictError: ride is not unassigned (including a lost race)
    """
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    driver_result = await db.execute(select(User).where(User.id == driver_id))
    driver = driver_result.scalar_one_or_none()
    if not driver:
        raise ResourceNotFoundError("Driver", driver_id)
    if not driver.has_role(UserRole.DRIVER):
        raise BusinessValidationError("User is not a driver", details={"driver_id": driver_id})
    if not driver.is_active:
        raise BusinessValidationError("Driver is not active", details={"driver_id": driver_id})

    if ride.status != RideStatus.UNASSIGNED or ride.assigned_driver_id is not None:
        raise ConflictError(
            "Ride already has a driver",
            details={"ride_id": ride_id, "status": ride.status.value},
        )

    now = utcnow()
    result = await db.execute(
        update(Ride)
        .where(
            Ride.id == ride_id,
            Ride.status == RideStatus.UNASSIGNED,
            Ride.assigned_driver_id.is_(None),
        )
        .values(status=RideStatus.ASSIGNED, assigned_driver_id=driver_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.warning("assignment lost race", extra={"ride_id": ride_id, "driver_id": driver_id})
        raise ConflictError("Ride already has a driver", details={"ride_id": ride_id})

    rejected, revoked = await close_ride_offers(db, ride_id, actor.id, now)
    await db.commit()
    await db.refresh(ride)

    logger.info(
        "driver assigned",
        extra={"ride_id": ride_id, "driver_id": driver_id, "rejected_claims": rejected, "revoked_shares": revoked},
    )
    return ride


async def unassign_driver(db: AsyncSession, ride_id: int, actor: Actor) -> Tuple[Ride, int]:
    """
    Return an assigned ride to the unassigned pool.

    Shares and claims are left as they are; a previously approved claim
    stays approved.

    Returns:
        (ride, previous_driver_id)
    """
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    previous_driver_id = ride.assigned_driver_id
    if previous_driver_id is None:
        raise ConflictError("Ride has no assigned driver", details={"ride_id": ride_id})
    if ride.status != RideStatus.ASSIGNED:
        raise InvalidTransitionError(
            ride.status.value,
            RideStatus.UNASSIGNED.value,
            message="Only rides in 'assigned' status can be unassigned",
        )

    result = await db.execute(
        update(Ride)
        .where(
            Ride.id == ride_id,
            Ride.status == RideStatus.ASSIGNED,
            Ride.assigned_driver_id == previous_driver_id,
        )
        .values(status=RideStatus.UNASSIGNED, assigned_driver_id=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Ride changed concurrently", details={"ride_id": ride_id})

    await db.commit()
    await db.refresh(ride)

    logger.info("driver unassigned", extra={"ride_id": ride_id, "driver_id": previous_driver_id})
    return ride, previous_driver_id


async def set_ride_status(
    db: AsyncSession,
    ride_id: int,
    next_status: RideStatus,
    actor: Actor,
) -> Tuple[Ride, RideStatus]:
    """
    Progress a ride along the lifecycle.

    The assigned driver moves one step at a time; dispatchers and admins may
    skip ahead to any later status. Completed is terminal.

    Returns:
        (ride, previous_status)
    """
    ride = await get_ride_or_404(db, ride_id)
    current = ride.status

    if next_status not in FORWARD_STATUSES or current == RideStatus.UNASSIGNED:
        raise InvalidTransitionError(current.value, next_status.value)

    privileged = is_privileged(actor)
    if not privileged and actor.id != ride.assigned_driver_id:
        raise InsufficientPermissionsError("Only the assigned driver or a dispatcher/admin can change ride status")

    current_index = STATUS_FLOW.index(current)
    next_index = STATUS_FLOW.index(next_status)
    if current == RideStatus.COMPLETED:
        raise InvalidTransitionError(current.value, next_status.value, message="Ride is already completed")
    if privileged:
        allowed = next_index > current_index
    else:
        allowed = next_index == current_index + 1
    if not allowed:
        raise InvalidTransitionError(current.value, next_status.value)

    result = await db.execute(
        update(Ride)
        .where(Ride.id == ride_id, Ride.status == current)
        .values(status=next_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Ride status changed concurrently", details={"ride_id": ride_id})

    await db.commit()
    await db.refresh(ride)

    logger.info(
        "ride status changed",
        extra={"ride_id": ride_id, "from": current.value, "to": next_status.value},
    )
    return ride, current
