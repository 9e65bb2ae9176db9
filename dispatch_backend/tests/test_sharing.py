"""
Ride sharing tests: creating, updating, revoking and listing shares, window
expiry and exclusivity.
"""

import pytest
from datetime import datetime, timedelta, timezone

from dispatch_backend.app.models.ride_enums import RideStatus, ShareStatus
from dispatch_backend.app.services.audit import AuditAction, get_audit_trail
from dispatch_backend.app.services.ride_sharing import visible_shares
from dispatch_backend.tests.factories import auth_headers, create_group, create_ride, create_share


def _now():
    return datetime.now(timezone.utc)


@pytest.mark.asyncio
async def test_dispatcher_shares_ride_with_group(client, ride, group, dispatcher):
    response = await client.post(
        f"/v1/rides/{ride.id}/shares",
        json={"group_id": group.id, "priority": 5, "exclusive": True},
        headers=auth_headers(dispatcher),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["status"] == "active"
    assert body["share"]["group_id"] == group.id
    assert body["share"]["priority"] == 5
    assert body["share"]["exclusive"] is True
    assert body["share"]["window"] is None


@pytest.mark.asyncio
async def test_client_cannot_share(client, ride, group, customer):
    response = await client.post(
        f"/v1/rides/{ride.id}/shares", json={"group_id": group.id}, headers=auth_headers(customer)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_duplicate_share_conflicts(client, ride, group, share, dispatcher):
    response = await client.post(
        f"/v1/rides/{ride.id}/shares", json={"group_id": group.id}, headers=auth_headers(dispatcher)
    )
    assert response.status_code == 409
    assert response.json()["details"] == {"ride_id": ride.id, "group_id": group.id}


@pytest.mark.asyncio
async def test_sharing_assigned_ride_conflicts(client, db_session, customer, driver, group, dispatcher):
    ride = await create_ride(db_session, customer, status=RideStatus.ASSIGNED, assigned_driver_id=driver.id)
    response = await client.post(
        f"/v1/rides/{ride.id}/shares", json={"group_id": group.id}, headers=auth_headers(dispatcher)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_share_unknown_ride_or_group(client, ride, group, dispatcher):
    headers = auth_headers(dispatcher)
    response = await client.post("/v1/rides/9999/shares", json={"group_id": group.id}, headers=headers)
    assert response.status_code == 404

    response = await client.post(f"/v1/rides/{ride.id}/shares", json={"group_id": 9999}, headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_inverted_window_is_rejected(client, ride, group, dispatcher):
    starts = _now() + timedelta(hours=2)
    ends = _now() + timedelta(hours=1)
    response = await client.post(
        f"/v1/rides/{ride.id}/shares",
        json={"group_id": group.id, "window": {"starts_at": starts.isoformat(), "ends_at": ends.isoformat()}},
        headers=auth_headers(dispatcher),
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_active_listing_filters_window_and_status(client, db_session, ride, customer, dispatcher):
    g_open = await create_group(db_session, "Open")
    g_low = await create_group(db_session, "Low")
    g_future = await create_group(db_session, "Future")
    g_expired = await create_group(db_session, "Expired")
    g_revoked = await create_group(db_session, "Revoked")

    await create_share(db_session, ride, g_open, dispatcher, priority=10)
    await create_share(db_session, ride, g_low, dispatcher, priority=1)
    await create_share(db_session, ride, g_future, dispatcher, starts_at=_now() + timedelta(hours=1))
    await create_share(
        db_session, ride, g_expired, dispatcher,
        starts_at=_now() - timedelta(hours=2), ends_at=_now() - timedelta(hours=1),
    )
    await create_share(db_session, ride, g_revoked, dispatcher, status=ShareStatus.REVOKED, revoked_at=_now())

    response = await client.get(f"/v1/rides/{ride.id}/shares", headers=auth_headers(customer))
    assert response.status_code == 200
    assert [item["group_id"] for item in response.json()] == [g_open.id, g_low.id]

    response = await client.get(f"/v1/rides/{ride.id}/shares/revoked", headers=auth_headers(customer))
    assert response.status_code == 200
    assert [item["group_id"] for item in response.json()] == [g_revoked.id]
    assert response.json()[0]["status"] == "revoked"


@pytest.mark.asyncio
async def test_listing_requires_ride_access(client, ride, share, other_customer):
    response = await client.get(f"/v1/rides/{ride.id}/shares", headers=auth_headers(other_customer))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_expired_share_reports_expired_status(client, db_session, ride, group, dispatcher):
    share = await create_share(
        db_session, ride, group, dispatcher,
        starts_at=_now() - timedelta(hours=2), ends_at=_now() - timedelta(minutes=1),
    )

    response = await client.patch(
        f"/v1/ride-shares/{share.id}", json={"priority": 3}, headers=auth_headers(dispatcher)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "expired"
    assert response.json()["share"]["priority"] == 3


@pytest.mark.asyncio
async def test_revoke_is_idempotent(client, fresh_session, ride, share, dispatcher):
    headers = auth_headers(dispatcher)

    first = await client.delete(f"/v1/ride-shares/{share.id}", headers=headers)
    assert first.status_code == 200
    assert first.json()["status"] == "revoked"
    revoked_at = first.json()["share"]["revoked_at"]
    assert revoked_at is not None

    second = await client.delete(f"/v1/ride-shares/{share.id}", headers=headers)
    assert second.status_code == 200
    assert second.json()["status"] == "revoked"
    assert second.json()["share"]["revoked_at"] == revoked_at

    async with fresh_session() as session:
        logs = await get_audit_trail(session, action=AuditAction.SHARE_REVOKED, ride_id=ride.id)
        assert len(logs) == 1


@pytest.mark.asyncio
async def test_revoked_share_can_be_reactivated_while_unassigned(client, ride, share, dispatcher):
    headers = auth_headers(dispatcher)
    await client.delete(f"/v1/ride-shares/{share.id}", headers=headers)

    response = await client.patch(f"/v1/ride-shares/{share.id}", json={"reactivate": True}, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["share"]["revoked_at"] is None


@pytest.mark.asyncio
async def test_reactivation_after_assignment_conflicts(client, ride, share, dispatcher, driver):
    headers = auth_headers(dispatcher)
    response = await client.post(f"/v1/rides/{ride.id}/assign", json={"driver_id": driver.id}, headers=headers)
    assert response.status_code == 200

    response = await client.patch(f"/v1/ride-shares/{share.id}", json={"reactivate": True}, headers=headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_share_window(client, ride, share, dispatcher):
    ends = _now() + timedelta(hours=3)
    response = await client.patch(
        f"/v1/ride-shares/{share.id}",
        json={"window": {"ends_at": ends.isoformat()}, "exclusive": True},
        headers=auth_headers(dispatcher),
    )
    assert response.status_code == 200
    body = response.json()["share"]
    assert body["exclusive"] is True
    assert body["window"]["starts_at"] is None
    assert body["window"]["ends_at"] is not None


@pytest.mark.asyncio
async def test_unknown_share_is_not_found(client, dispatcher):
    response = await client.delete("/v1/ride-shares/777", headers=auth_headers(dispatcher))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_exclusive_share_shadows_open_shares(db_session, ride, dispatcher):
    g_a = await create_group(db_session, "A")
    g_b = await create_group(db_session, "B")
    g_c = await create_group(db_session, "C")
    open_share = await create_share(db_session, ride, g_a, dispatcher, priority=9)
    exclusive = await create_share(db_session, ride, g_b, dispatcher, exclusive=True, priority=1)
    future_exclusive = await create_share(
        db_session, ride, g_c, dispatcher, exclusive=True, starts_at=_now() + timedelta(hours=1)
    )

    shares = [open_share, exclusive, future_exclusive]
    assert [s.id for s in visible_shares(shares, _now())] == [exclusive.id]

    # Once the exclusive window opens for C as well, both exclusives are visible
    later = _now() + timedelta(hours=2)
    assert [s.id for s in visible_shares(shares, later)] == [exclusive.id, future_exclusive.id]

    # Without any open exclusive share, everything open is visible
    assert [s.id for s in visible_shares([open_share], _now())] == [open_share.id]
