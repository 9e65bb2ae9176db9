"""
Read-side queries for rides, claims and the driver inbox.

Ride listings are filtered by `ride_scope_filter` in SQL; single-ride reads
apply the same rule to the loaded row with `can_see_ride`.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.exceptions import BusinessValidationError, ResourceNotFoundError
from dispatch_backend.app.core.guards import assert_can_access_ride, can_see_ride, ride_scope_filter
from dispatch_backend.app.models.group import GroupMember
from dispatch_backend.app.models.ride import Ride
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.ride_enums import RideClaimStatus, RideStatus, RideType
from dispatch_backend.app.models.ride_group_share import RideGroupShare, as_utc
from dispatch_backend.app.schemas.ride_share import InboxClaim, InboxItem, InboxRide, ShareWindow
from dispatch_backend.app.services.ride_sharing import visible_shares
from dispatch_backend.app.services.ride_workflow import get_ride_or_404, utcnow

# Accepted values of the `sort` query parameter
SORT_FIELDS = {
    "scheduled_at": Ride.scheduled_at.asc(),
    "-scheduled_at": Ride.scheduled_at.desc(),
    "created_at": Ride.created_at.asc(),
    "-created_at": Ride.created_at.desc(),
}

INBOX_TABS = ("available", "claimed")


async def get_ride(db: AsyncSession, ride_id: int, actor: Actor) -> Ride:
    """Fetch one ride; rides outside the actor's scope look missing."""
    ride = await get_ride_or_404(db, ride_id)
    if not can_see_ride(actor, ride):
        raise ResourceNotFoundError("Ride", ride_id)
    return ride


async def list_rides(
    db: AsyncSession,
    actor: Actor,
    status: Optional[RideStatus] = None,
    ride_type: Optional[RideType] = None,
    driver_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort: str = "-scheduled_at",
    page: int = 1,
    limit: Optional[int] = None,
) -> Tuple[List[Ride], int, int]:
    """
    Paginated, scope-filtered ride listing.

    Returns:
        (rides, total, effective_limit)
    """
    if sort not in SORT_FIELDS:
        raise BusinessValidationError(
            f"Unsupported sort '{sort}'",
            details={"allowed": sorted(SORT_FIELDS)},
        )
    limit = min(limit or settings.default_page_size, settings.max_page_size)
    page = max(page, 1)

    filters = [ride_scope_filter(actor)]
    if status is not None:
        filters.append(Ride.status == status)
    if ride_type is not None:
        filters.append(Ride.type == ride_type)
    if driver_id is not None:
        filters.append(Ride.assigned_driver_id == driver_id)
    if date_from is not None:
        filters.append(Ride.scheduled_at >= as_utc(date_from))
    if date_to is not None:
        filters.append(Ride.scheduled_at <= as_utc(date_to))

    count_result = await db.execute(select(func.count(Ride.id)).where(*filters))
    total = count_result.scalar()

    result = await db.execute(
        select(Ride)
        .where(*filters)
        .order_by(SORT_FIELDS[sort], Ride.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total, limit


async def list_claims(
    db: AsyncSession,
    ride_id: int,
    actor: Actor,
    status: Optional[RideClaimStatus] = None,
) -> List[RideClaim]:
    """Claims on a ride, oldest first (creator or dispatcher/admin)."""
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    query = select(RideClaim).where(RideClaim.ride_id == ride_id)
    if status is not None:
        query = query.where(RideClaim.status == status)
    result = await db.execute(query.order_by(RideClaim.created_at, RideClaim.id))
    return list(result.scalars().all())


async def list_driver_claims(
    db: AsyncSession,
    driver_id: int,
    status: Optional[RideClaimStatus] = None,
) -> List[RideClaim]:
    """A driver's own claims, newest first."""
    query = select(RideClaim).where(RideClaim.driver_id == driver_id)
    if status is not None:
        query = query.where(RideClaim.status == status)
    result = await db.execute(query.order_by(RideClaim.created_at.desc(), RideClaim.id.desc()))
    return list(result.scalars().all())


def _inbox_ride(ride: Ride) -> InboxRide:
    customer = ride.customer or {}
    return InboxRide(
        id=ride.id,
        from_address=ride.from_address,
        to_address=ride.to_address,
        scheduled_at=ride.scheduled_at,
        status=ride.status,
        from_lat=ride.from_lat,
        from_lng=ride.from_lng,
        to_lat=ride.to_lat,
        to_lng=ride.to_lng,
        customer_name=customer.get("name"),
    )


def _inbox_item(
    ride: Ride,
    share: Optional[RideGroupShare],
    claim: Optional[RideClaim],
    now: datetime,
) -> InboxItem:
    window = None
    if share is not None and (share.starts_at or share.ends_at):
        window = ShareWindow(starts_at=as_utc(share.starts_at), ends_at=as_utc(share.ends_at))
    return InboxItem(
        share_id=share.id if share else None,
        group_id=share.group_id if share else None,
        priority=share.priority if share else None,
        exclusive=share.exclusive if share else None,
        window=window,
        status=share.effective_status(now) if share else None,
        my_claim=InboxClaim(claim_id=claim.id, status=claim.status, created_at=claim.created_at) if claim else None,
        ride=_inbox_ride(ride),
    )


async def _driver_group_ids(db: AsyncSession, driver_id: int) -> List[int]:
    result = await db.execute(select(GroupMember.group_id).where(GroupMember.user_id == driver_id))
    return list(result.scalars().all())


async def _driver_claims_by_ride(
    db: AsyncSession,
    driver_id: int,
    ride_ids: List[int],
    statuses: Tuple[RideClaimStatus, ...],
) -> Dict[int, RideClaim]:
    """Most recent claim of the driver per ride."""
    if not ride_ids:
        return {}
    result = await db.execute(
        select(RideClaim)
        .where(
            RideClaim.driver_id == driver_id,
            RideClaim.ride_id.in_(ride_ids),
            RideClaim.status.in_(statuses),
        )
        .order_by(RideClaim.created_at, RideClaim.id)
    )
    return {claim.ride_id: claim for claim in result.scalars().all()}


async def _available_inbox(db: AsyncSession, driver_id: int, now: datetime) -> List[InboxItem]:
    group_ids = await _driver_group_ids(db, driver_id)
    if not group_ids:
        return []

    # Every share of every unassigned ride offered to one of the driver's
    # groups; sibling shares are needed to apply exclusive shadowing.
    offered = select(RideGroupShare.ride_id).where(RideGroupShare.group_id.in_(group_ids))
    result = await db.execute(
        select(RideGroupShare, Ride)
        .join(Ride, Ride.id == RideGroupShare.ride_id)
        .where(
            Ride.status == RideStatus.UNASSIGNED,
            Ride.assigned_driver_id.is_(None),
            RideGroupShare.ride_id.in_(offered),
        )
    )

    rides: Dict[int, Ride] = {}
    shares_by_ride: Dict[int, List[RideGroupShare]] = {}
    for share, ride in result.all():
        rides[ride.id] = ride
        shares_by_ride.setdefault(ride.id, []).append(share)

    best: Dict[int, RideGroupShare] = {}
    for ride_id, shares in shares_by_ride.items():
        mine = [share for share in visible_shares(shares, now) if share.group_id in group_ids]
        if mine:
            best[ride_id] = mine[0]

    claims = await _driver_claims_by_ride(
        db, driver_id, list(best), (RideClaimStatus.QUEUED, RideClaimStatus.APPROVED)
    )
    items = [_inbox_item(rides[ride_id], share, claims.get(ride_id), now) for ride_id, share in best.items()]
    items.sort(key=lambda item: (-item.priority, as_utc(item.ride.scheduled_at), item.ride.id))
    return items


async def _claimed_inbox(db: AsyncSession, driver_id: int, now: datetime) -> List[InboxItem]:
    result = await db.execute(
        select(Ride)
        .where(Ride.assigned_driver_id == driver_id)
        .order_by(Ride.scheduled_at, Ride.id)
    )
    rides = list(result.scalars().all())
    if not rides:
        return []
    ride_ids = [ride.id for ride in rides]

    group_ids = await _driver_group_ids(db, driver_id)
    latest_share: Dict[int, RideGroupShare] = {}
    if group_ids:
        share_result = await db.execute(
            select(RideGroupShare)
            .where(RideGroupShare.ride_id.in_(ride_ids), RideGroupShare.group_id.in_(group_ids))
            .order_by(RideGroupShare.created_at, RideGroupShare.id)
        )
        latest_share = {share.ride_id: share for share in share_result.scalars().all()}

    claims = await _driver_claims_by_ride(db, driver_id, ride_ids, (RideClaimStatus.APPROVED,))
    return [_inbox_item(ride, latest_share.get(ride.id), claims.get(ride.id), now) for ride in rides]


async def driver_inbox(
    db: AsyncSession,
    driver_id: int,
    tab: str = "available",
    now: Optional[datetime] = None,
) -> List[InboxItem]:
    """
    Driver inbox.

    - available: unassigned rides offered to one of the driver's groups, with
      the highest-priority visible share and the driver's own open claim
    - claimed: rides currently assigned to the driver
    """
    now = now or utcnow()
    if tab == "available":
        return await _available_inbox(db, driver_id, now)
    if tab == "claimed":
        return await _claimed_inbox(db, driver_id, now)
    raise BusinessValidationError(f"Unknown inbox tab '{tab}'", details={"allowed": list(INBOX_TABS)})


async def inbox_count(db: AsyncSession, driver_id: int, tab: str = "available") -> int:
    return len(await driver_inbox(db, driver_id, tab))
