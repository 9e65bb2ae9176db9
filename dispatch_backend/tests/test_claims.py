"""
Ride claim tests: queueing through shares, approval, rejection and
withdrawal.
"""

import pytest
from datetime import datetime, timedelta, timezone

from dispatch_backend.app.models.ride import Ride
from dispatch_backend.app.models.ride_claim import RideClaim
from dispatch_backend.app.models.ride_group_share import RideGroupShare
from dispatch_backend.app.models.ride_enums import RideClaimStatus, RideStatus, ShareStatus
from dispatch_backend.app.services.audit import AuditAction, get_audit_trail
from dispatch_backend.tests.factories import auth_headers, create_group, create_ride, create_share


async def _claim(client, share_id, driver):
    response = await client.post(f"/v1/ride-shares/{share_id}/claim", headers=auth_headers(driver))
    assert response.status_code == 201, response.json()
    return response.json()["claim_id"]


@pytest.mark.asyncio
async def test_driver_queues_claim(client, ride, share, driver):
    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["status"] == "queued"
    assert body["ride_id"] == ride.id
    assert body["share_id"] == share.id


@pytest.mark.asyncio
async def test_duplicate_queued_claim_conflicts(client, share, driver):
    await _claim(client, share.id, driver)

    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_driver_outside_group_is_forbidden(client, share, outsider_driver):
    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(outsider_driver))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_non_driver_cannot_claim(client, share, customer):
    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(customer))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_claim_through_revoked_share_is_not_found(client, share, dispatcher, driver):
    await client.delete(f"/v1/ride-shares/{share.id}", headers=auth_headers(dispatcher))

    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_claim_through_expired_share_is_not_found(client, db_session, ride, group, dispatcher, driver):
    now = datetime.now(timezone.utc)
    expired = await create_share(
        db_session, ride, group, dispatcher,
        starts_at=now - timedelta(hours=2), ends_at=now - timedelta(seconds=1),
    )
    response = await client.post(f"/v1/ride-shares/{expired.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_claim_before_window_opens_is_not_found(client, db_session, ride, group, dispatcher, driver):
    upcoming = await create_share(
        db_session, ride, group, dispatcher,
        starts_at=datetime.now(timezone.utc) + timedelta(minutes=30),
    )
    response = await client.post(f"/v1/ride-shares/{upcoming.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_claim_through_shadowed_share_is_not_found(
    client, db_session, ride, share, dispatcher, driver, outsider_driver
):
    vip = await create_group(db_session, "VIP", members=[outsider_driver])
    exclusive = await create_share(db_session, ride, vip, dispatcher, exclusive=True)

    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(driver))
    assert response.status_code == 404

    response = await client.post(f"/v1/ride-shares/{exclusive.id}/claim", headers=auth_headers(outsider_driver))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_approve_claim_assigns_and_closes_offers(
    client, fresh_session, ride, share, customer, driver, driver2
):
    first = await _claim(client, share.id, driver)
    second = await _claim(client, share.id, driver2)

    response = await client.post(
        f"/v1/rides/{ride.id}/claims/{first}/approve", headers=auth_headers(customer)
    )
    assert response.status_code == 200
    body = response.json()
    assert body == {
        "ok": True,
        "status": "assigned",
        "claim_id": first,
        "ride_id": ride.id,
        "claim_status": "approved",
        "assigned_driver_id": driver.id,
    }

    async with fresh_session() as session:
        stored_ride = await session.get(Ride, ride.id)
        approved = await session.get(RideClaim, first)
        rejected = await session.get(RideClaim, second)
        stored_share = await session.get(RideGroupShare, share.id)

        assert stored_ride.status == RideStatus.ASSIGNED
        assert stored_ride.assigned_driver_id == driver.id
        assert approved.status == RideClaimStatus.APPROVED
        assert approved.decided_by_id == customer.id
        assert approved.decided_at is not None
        assert rejected.status == RideClaimStatus.REJECTED
        assert stored_share.status == ShareStatus.REVOKED

        logs = await get_audit_trail(session, action=AuditAction.CLAIM_APPROVED, ride_id=ride.id)
        assert len(logs) == 1
        assert logs[0].target_user_id == driver.id


@pytest.mark.asyncio
async def test_approve_by_stranger_is_forbidden(client, ride, share, driver, other_customer):
    claim_id = await _claim(client, share.id, driver)

    response = await client.post(
        f"/v1/rides/{ride.id}/claims/{claim_id}/approve", headers=auth_headers(other_customer)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_approve_claim_of_other_ride_is_not_found(client, db_session, ride, share, customer, driver):
    other_ride = await create_ride(db_session, customer)
    claim_id = await _claim(client, share.id, driver)

    response = await client.post(
        f"/v1/rides/{other_ride.id}/claims/{claim_id}/approve", headers=auth_headers(customer)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reject_claim(client, fresh_session, ride, share, dispatcher, driver):
    claim_id = await _claim(client, share.id, driver)

    response = await client.post(
        f"/v1/rides/{ride.id}/claims/{claim_id}/reject", headers=auth_headers(dispatcher)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    async with fresh_session() as session:
        stored_ride = await session.get(Ride, ride.id)
        assert stored_ride.status == RideStatus.UNASSIGNED
        assert stored_ride.assigned_driver_id is None

    # Rejecting again is a conflict: the claim is no longer queued
    response = await client.post(
        f"/v1/rides/{ride.id}/claims/{claim_id}/reject", headers=auth_headers(dispatcher)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_rejected_driver_can_queue_again(client, ride, share, dispatcher, driver):
    claim_id = await _claim(client, share.id, driver)
    await client.post(f"/v1/rides/{ride.id}/claims/{claim_id}/reject", headers=auth_headers(dispatcher))

    again = await _claim(client, share.id, driver)
    assert again != claim_id


@pytest.mark.asyncio
async def test_withdraw_own_claim(client, ride, share, driver, driver2):
    claim_id = await _claim(client, share.id, driver)

    response = await client.delete(f"/v1/rides/{ride.id}/claims/{claim_id}", headers=auth_headers(driver2))
    assert response.status_code == 403

    response = await client.delete(f"/v1/rides/{ride.id}/claims/{claim_id}", headers=auth_headers(driver))
    assert response.status_code == 200
    assert response.json()["claim_status"] == "withdrawn"

    response = await client.delete(f"/v1/rides/{ride.id}/claims/{claim_id}", headers=auth_headers(driver))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_withdrawn_claim_cannot_be_approved(client, ride, share, customer, driver):
    claim_id = await _claim(client, share.id, driver)
    await client.delete(f"/v1/rides/{ride.id}/claims/{claim_id}", headers=auth_headers(driver))

    response = await client.post(
        f"/v1/rides/{ride.id}/claims/{claim_id}/approve", headers=auth_headers(customer)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_claim_after_assignment_is_rejected(client, ride, share, customer, driver, driver2):
    claim_id = await _claim(client, share.id, driver)
    await client.post(f"/v1/rides/{ride.id}/claims/{claim_id}/approve", headers=auth_headers(customer))

    # Approval revoked the share, so it no longer accepts claims
    response = await client.post(f"/v1/ride-shares/{share.id}/claim", headers=auth_headers(driver2))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unassign_keeps_approved_claim(client, fresh_session, ride, share, customer, driver):
    claim_id = await _claim(client, share.id, driver)
    await client.post(f"/v1/rides/{ride.id}/claims/{claim_id}/approve", headers=auth_headers(customer))

    response = await client.post(f"/v1/rides/{ride.id}/unassign", headers=auth_headers(customer))
    assert response.status_code == 200

    async with fresh_session() as session:
        claim = await session.get(RideClaim, claim_id)
        assert claim.status == RideClaimStatus.APPROVED


@pytest.mark.asyncio
async def test_list_claims_oldest_first(client, ride, share, customer, driver, driver2, other_customer):
    first = await _claim(client, share.id, driver)
    second = await _claim(client, share.id, driver2)

    response = await client.get(f"/v1/rides/{ride.id}/claims", headers=auth_headers(customer))
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [first, second]

    response = await client.get(
        f"/v1/rides/{ride.id}/claims", params={"status": "approved"}, headers=auth_headers(customer)
    )
    assert response.json() == []

    response = await client.get(f"/v1/rides/{ride.id}/claims", headers=auth_headers(other_customer))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_my_claims(client, share, driver, driver2):
    claim_id = await _claim(client, share.id, driver)

    response = await client.get("/v1/ride-claims/mine", headers=auth_headers(driver))
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [claim_id]

    response = await client.get("/v1/ride-claims/mine", headers=auth_headers(driver2))
    assert response.json() == []


@pytest.mark.asyncio
async def test_unassigned_ride_with_approved_claim_is_redispatched_directly(
    client, db_session, fresh_session, ride, share, customer, dispatcher, driver, driver2, outsider_driver
):
    claim_id = await _claim(client, share.id, driver)
    await client.post(f"/v1/rides/{ride.id}/claims/{claim_id}/approve", headers=auth_headers(customer))
    response = await client.post(f"/v1/rides/{ride.id}/unassign", headers=auth_headers(customer))
    assert response.status_code == 200

    headers = auth_headers(dispatcher)

    # The approved claim stays as history, so the ride cannot be offered again
    response = await client.patch(f"/v1/ride-shares/{share.id}", json={"reactivate": True}, headers=headers)
    assert response.status_code == 409
    assert response.json()["details"]["claim_id"] == claim_id

    other_group = await create_group(db_session, "Night shift", members=[outsider_driver])
    response = await client.post(
        f"/v1/rides/{ride.id}/shares", json={"group_id": other_group.id}, headers=headers
    )
    assert response.status_code == 409

    # A share created underneath the workflow still does not accept claims
    side_share = await create_share(db_session, ride, other_group, dispatcher)
    response = await client.post(f"/v1/ride-shares/{side_share.id}/claim", headers=auth_headers(outsider_driver))
    assert response.status_code == 409

    response = await client.post(
        f"/v1/rides/{ride.id}/assign", json={"driver_id": driver2.id}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["ride"]["assigned_driver_id"] == driver2.id

    async with fresh_session() as session:
        stored_claim = await session.get(RideClaim, claim_id)
        assert stored_claim.status == RideClaimStatus.APPROVED
