"""
Ride sharing service.

Offers unassigned rides to driver groups. A share is visible to the members
of its group while it is active and inside its window; while any exclusive
share of a ride is open, the ride's non-exclusive shares are shadowed.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    ResourceNotFoundError,
)
from dispatch_backend.app.models.group import Group
from dispatch_backend.app.models.ride_enums import ShareStatus
from dispatch_backend.app.models.ride_group_share import RideGroupShare, as_utc
from dispatch_backend.app.schemas.ride_share import ShareWindow
from dispatch_backend.app.services.ride_workflow import assert_open_for_offers, get_ride_or_404, utcnow

logger = logging.getLogger("dispatch.shares")


def _window_bounds(window: Optional[ShareWindow]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Normalize a window to UTC bounds and reject inverted ones."""
    if window is None:
        return None, None
    starts_at = as_utc(window.starts_at)
    ends_at = as_utc(window.ends_at)
    if starts_at is not None and ends_at is not None and ends_at <= starts_at:
        raise BusinessValidationError(
            "Share window must end after it starts",
            details={"starts_at": starts_at.isoformat(), "ends_at": ends_at.isoformat()},
        )
    return starts_at, ends_at


def visible_shares(shares: Sequence[RideGroupShare], now: datetime) -> List[RideGroupShare]:
    """
    Shares of ONE ride that drivers can currently see and claim through.

    Claimable shares only; if any of them is exclusive, only the exclusive
    ones remain. Ordered by priority, highest first.
    """
    open_shares = [share for share in shares if share.is_claimable(now)]
    exclusive = [share for share in open_shares if share.exclusive]
    if exclusive:
        open_shares = exclusive
    return sorted(open_shares, key=lambda share: (-share.priority, share.id))


async def get_share_or_404(db: AsyncSession, share_id: int) -> RideGroupShare:
    result = await db.execute(select(RideGroupShare).where(RideGroupShare.id == share_id))
    share = result.scalar_one_or_none()
    if not share:
        raise ResourceNotFoundError("RideShare", share_id)
    return share


async def get_ride_shares(db: AsyncSession, ride_id: int) -> List[RideGroupShare]:
    """All shares of a ride regardless of status."""
    result = await db.execute(
        select(RideGroupShare)
        .where(RideGroupShare.ride_id == ride_id)
        .order_by(RideGroupShare.priority.desc(), RideGroupShare.id)
    )
    return list(result.scalars().all())


async def create_share(
    db: AsyncSession,
    ride_id: int,
    group_id: int,
    actor: Actor,
    exclusive: bool = False,
    priority: int = 0,
    window: Optional[ShareWindow] = None,
) -> RideGroupShare:
    """
    Offer an unassigned ride to a group.

    Raises:
        ResourceNotFoundError: ride or group missing
        ConflictError: ride already has a driver or an approved claim, or the ride is already
            shared with this group (update that share instead)
        BusinessValidationError: window ends before it starts
    """
    ride = await get_ride_or_404(db, ride_id)
    await assert_open_for_offers(db, ride)

    group_result = await db.execute(select(Group).where(Group.id == group_id))
    if not group_result.scalar_one_or_none():
        raise ResourceNotFoundError("Group", group_id)

    starts_at, ends_at = _window_bounds(window)

    share = RideGroupShare(
        ride_id=ride_id,
        group_id=group_id,
        exclusive=exclusive,
        priority=priority,
        starts_at=starts_at,
        ends_at=ends_at,
        status=ShareStatus.ACTIVE,
        created_by=actor.id,
    )
    db.add(share)
    try:
        await db.flush()  # Unique (ride_id, group_id) is enforced here
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Ride is already shared with this group",
            details={"ride_id": ride_id, "group_id": group_id},
        )

    await db.commit()
    await db.refresh(share)

    logger.info(
        "ride shared",
        extra={"ride_id": ride_id, "group_id": group_id, "share_id": share.id, "exclusive": exclusive},
    )
    return share


async def update_share(
    db: AsyncSession,
    share_id: int,
    exclusive: Optional[bool] = None,
    priority: Optional[int] = None,
    window: Optional[ShareWindow] = None,
    reactivate: bool = False,
) -> RideGroupShare:
    """
    Change an existing share in place.

    A revoked share can be reactivated only while its ride is unassigned
    and has no approved claim.
    """
    share = await get_share_or_404(db, share_id)

    if reactivate and share.status == ShareStatus.REVOKED:
        ride = await get_ride_or_404(db, share.ride_id)
        await assert_open_for_offers(db, ride)
        share.status = ShareStatus.ACTIVE
        share.revoked_at = None

    if window is not None:
        share.starts_at, share.ends_at = _window_bounds(window)
    if exclusive is not None:
        share.exclusive = exclusive
    if priority is not None:
        share.priority = priority

    await db.commit()
    await db.refresh(share)
    return share


async def revoke_share(db: AsyncSession, share_id: int) -> Tuple[RideGroupShare, bool]:
    """
    Revoke a share. Idempotent: revoking a revoked share changes nothing.

    Claims already approved through the share are untouched.

    Returns:
        (share, changed)
    """
    share = await get_share_or_404(db, share_id)
    if share.status == ShareStatus.REVOKED:
        return share, False

    result = await db.execute(
        update(RideGroupShare)
        .where(RideGroupShare.id == share_id, RideGroupShare.status != ShareStatus.REVOKED)
        .values(status=ShareStatus.REVOKED, revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(share)

    changed = result.rowcount > 0
    if changed:
        logger.info("share revoked", extra={"share_id": share_id, "ride_id": share.ride_id})
    return share, changed


async def list_active_shares(
    db: AsyncSession,
    ride_id: int,
    now: Optional[datetime] = None,
) -> List[RideGroupShare]:
    """Active shares whose window is open, highest priority first."""
    now = now or utcnow()
    result = await db.execute(
        select(RideGroupShare)
        .where(
            RideGroupShare.ride_id == ride_id,
            RideGroupShare.status == ShareStatus.ACTIVE,
            or_(RideGroupShare.starts_at.is_(None), RideGroupShare.starts_at <= now),
            or_(RideGroupShare.ends_at.is_(None), RideGroupShare.ends_at > now),
        )
        .order_by(RideGroupShare.priority.desc(), RideGroupShare.id)
    )
    return list(result.scalars().all())


async def list_revoked_shares(db: AsyncSession, ride_id: int) -> List[RideGroupShare]:
    result = await db.execute(
        select(RideGroupShare)
        .where(RideGroupShare.ride_id == ride_id, RideGroupShare.status == ShareStatus.REVOKED)
        .order_by(RideGroupShare.revoked_at.desc(), RideGroupShare.id)
    )
    return list(result.scalars().all())
