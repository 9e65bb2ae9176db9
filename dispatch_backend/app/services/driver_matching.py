"""
Eligible driver matching.

Lists the drivers who can currently see a ride through its visible shares,
so a dispatcher can pick one for direct assignment or compare claimants.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.guards import assert_can_access_ride
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.group import GroupMember
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.user import User
from dispatch_backend.app.schemas.ride_claim import EligibleDriverResponse
from dispatch_backend.app.services.ride_sharing import get_ride_shares, visible_shares
from dispatch_backend.app.services.ride_workflow import get_ride_or_404, utcnow


async def list_eligible_drivers(
    db: AsyncSession,
    ride_id: int,
    actor: Actor,
    now: Optional[datetime] = None,
) -> List[EligibleDriverResponse]:
    """
    Active drivers reached by a visible share of the ride.

    Each driver carries the best share priority reaching them and their most
    recent claim on the ride, ordered by priority (highest first).
    """
    ride = await get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    now = now or utcnow()
    shares = visible_shares(await get_ride_shares(db, ride_id), now)
    if not shares:
        return []

    group_priority: Dict[int, int] = {}
    for share in shares:
        group_priority[share.group_id] = max(group_priority.get(share.group_id, share.priority), share.priority)

    result = await db.execute(
        select(GroupMember.group_id, User)
        .join(User, User.id == GroupMember.user_id)
        .where(GroupMember.group_id.in_(list(group_priority)), User.is_active.is_(True))
    )

    drivers: Dict[int, User] = {}
    driver_groups: Dict[int, List[int]] = {}
    for group_id, user in result.all():
        if not user.has_role(UserRole.DRIVER):
            continue
        drivers[user.id] = user
        driver_groups.setdefault(user.id, []).append(group_id)

    if not drivers:
        return []

    claim_result = await db.execute(
        select(RideClaim)
        .where(RideClaim.ride_id == ride_id, RideClaim.driver_id.in_(list(drivers)))
        .order_by(RideClaim.created_at, RideClaim.id)
    )
    latest_claim = {claim.driver_id: claim for claim in claim_result.scalars().all()}

    eligible = []
    for driver_id, user in drivers.items():
        groups = sorted(driver_groups[driver_id])
        claim = latest_claim.get(driver_id)
        eligible.append(
            EligibleDriverResponse(
                driver_id=driver_id,
                username=user.username,
                name=user.name,
                best_priority=max(group_priority[group_id] for group_id in groups),
                group_ids=groups,
                claim_id=claim.id if claim else None,
                claim_status=claim.status if claim else None,
            )
        )

    eligible.sort(key=lambda entry: (-entry.best_priority, entry.username))
    return eligible
