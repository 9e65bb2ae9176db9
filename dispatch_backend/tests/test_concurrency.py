"""
Concurrency Tests.

Validates that lost races are decided by conditional updates and storage
constraints, not by state the losing request read earlier.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from dispatch_backend.app.core.exceptions import ConflictError
from dispatch_backend.app.db import session as session_module
from dispatch_backend.app.models.ride import Ride
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.ride_enums import RideClaimStatus, RideStatus
from dispatch_backend.app.services.ride_claims import approve_claim, queue_claim
from dispatch_backend.app.services.ride_workflow import assign_driver, set_ride_status
from dispatch_backend.tests.factories import actor_of, create_ride


@pytest.mark.asyncio
async def test_duplicate_queued_claim_rejected_by_storage(db_session, ride, share, driver):
    """The queued-claim uniqueness holds even when the service is bypassed."""
    db_session.add(RideClaim(ride_id=ride.id, share_id=share.id, driver_id=driver.id))
    await db_session.commit()

    db_session.add(RideClaim(ride_id=ride.id, share_id=share.id, driver_id=driver.id))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_second_approved_claim_rejected_by_storage(db_session, ride, driver, driver2):
    db_session.add(RideClaim(ride_id=ride.id, driver_id=driver.id, status=RideClaimStatus.APPROVED))
    await db_session.commit()

    db_session.add(RideClaim(ride_id=ride.id, driver_id=driver2.id, status=RideClaimStatus.APPROVED))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_approve_after_direct_assignment_conflicts(fresh_session, ride, share, driver, driver2, dispatcher):
    async with fresh_session() as session:
        claim = await queue_claim(session, share.id, actor_of(driver))

    # Another writer takes the ride underneath the pending approval
    async with fresh_session() as session:
        await session.execute(
            update(Ride)
            .where(Ride.id == ride.id)
            .values(status=RideStatus.ASSIGNED, assigned_driver_id=driver2.id)
        )
        await session.commit()

    async with fresh_session() as session:
        with pytest.raises(ConflictError):
            await approve_claim(session, ride.id, claim.id, actor_of(dispatcher))

    async with fresh_session() as session:
        stored_claim = await session.get(RideClaim, claim.id)
        stored_ride = await session.get(Ride, ride.id)
        assert stored_claim.status == RideClaimStatus.QUEUED
        assert stored_ride.assigned_driver_id == driver2.id


@pytest.mark.asyncio
async def test_only_one_of_two_approvals_wins(fresh_session, ride, share, driver, driver2, dispatcher):
    async with fresh_session() as session:
        first = await queue_claim(session, share.id, actor_of(driver))
        second = await queue_claim(session, share.id, actor_of(driver2))

    async with fresh_session() as session:
        ride_after, claim, rejected = await approve_claim(session, ride.id, first.id, actor_of(dispatcher))
        assert ride_after.assigned_driver_id == driver.id
        assert claim.status == RideClaimStatus.APPROVED
        assert rejected == 1

    async with fresh_session() as session:
        with pytest.raises(ConflictError):
            await approve_claim(session, ride.id, second.id, actor_of(dispatcher))

    async with fresh_session() as session:
        stored_ride = await session.get(Ride, ride.id)
        assert stored_ride.assigned_driver_id == driver.id


@pytest.mark.asyncio
async def test_stale_assignment_loses_to_approval(fresh_session, ride, share, driver, driver2, dispatcher):
    """A request that read the ride before it was taken must still lose."""
    async with fresh_session() as session:
        claim = await queue_claim(session, share.id, actor_of(driver))

    async with fresh_session() as stale:
        # Load the ride while it is still unassigned
        stale_ride = await stale.get(Ride, ride.id)
        assert stale_ride.status == RideStatus.UNASSIGNED

        async with fresh_session() as winner:
            await approve_claim(winner, ride.id, claim.id, actor_of(dispatcher))

        with pytest.raises(ConflictError):
            await assign_driver(stale, ride.id, driver2.id, actor_of(dispatcher))

    async with fresh_session() as session:
        stored_ride = await session.get(Ride, ride.id)
        stored_claim = await session.get(RideClaim, claim.id)
        assert stored_ride.assigned_driver_id == driver.id
        assert stored_claim.status == RideClaimStatus.APPROVED


@pytest.mark.asyncio
async def test_stale_status_change_conflicts(fresh_session, db_session, customer, driver, dispatcher):
    ride = await create_ride(db_session, customer, status=RideStatus.ASSIGNED, assigned_driver_id=driver.id)

    async with fresh_session() as stale:
        await stale.get(Ride, ride.id)

        async with fresh_session() as winner:
            await set_ride_status(winner, ride.id, RideStatus.ON_MY_WAY, actor_of(driver))

        # The stale session still believes the ride is 'assigned'
        with pytest.raises(ConflictError):
            await set_ride_status(stale, ride.id, RideStatus.ON_MY_WAY, actor_of(dispatcher))


def test_sessions_keep_state_after_commit():
    options = session_module.AsyncSessionLocal.kw
    assert options["expire_on_commit"] is False
    assert options["autoflush"] is False


@pytest.mark.asyncio
async def test_request_session_rolls_back_on_error(mocker, fresh_session, ride, driver):
    mocker.patch.object(session_module, "AsyncSessionLocal", fresh_session)

    requests = session_module.get_db()
    session = await requests.__anext__()
    await session.execute(
        update(Ride)
        .where(Ride.id == ride.id)
        .values(status=RideStatus.ASSIGNED, assigned_driver_id=driver.id)
    )
    with pytest.raises(RuntimeError):
        await requests.athrow(RuntimeError("handler failed"))

    async with fresh_session() as check:
        stored = await check.get(Ride, ride.id)
        assert stored.status == RideStatus.UNASSIGNED
        assert stored.assigned_driver_id is None
