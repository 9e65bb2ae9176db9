"""
Ride API endpoints.

CRUD, listing, direct assignment and status progression. Assignment state is
never edited through PATCH; it only moves through the workflow routes below.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.ride_enums import RideStatus, RideType
from dispatch_backend.app.schemas.ride import (
    DriverAssignment,
    RideActionResponse,
    RideCreate,
    RideListResponse,
    RideResponse,
    RideStatusUpdate,
    RideUpdate,
)
from dispatch_backend.app.schemas.audit import AuditLogResponse, AuditTrailResponse
from dispatch_backend.app.schemas.ride_claim import EligibleDriverResponse
from dispatch_backend.app.core.dependencies import Actor, get_current_actor
from dispatch_backend.app.core.guards import assert_can_access_ride
from dispatch_backend.app.services import ride_queries, ride_workflow
from dispatch_backend.app.services.driver_matching import list_eligible_drivers
from dispatch_backend.app.services.audit import log_event, get_audit_trail, AuditAction

router = APIRouter(prefix="/rides", tags=["Rides"])


@router.get("", response_model=RideListResponse)
async def list_rides(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, description="Capped at max_page_size"),
    status_filter: Optional[RideStatus] = Query(None, alias="status"),
    ride_type: Optional[RideType] = Query(None, alias="type"),
    driver_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort: str = Query("-scheduled_at", description="scheduled_at, -scheduled_at, created_at or -created_at"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    List rides visible to the caller.

    Dispatchers and admins see every ride; everyone else sees the rides they
    created or are assigned to.
    """
    rides, total, effective_limit = await ride_queries.list_rides(
        db,
        actor,
        status=status_filter,
        ride_type=ride_type,
        driver_id=driver_id,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        page=page,
        limit=limit,
    )
    return RideListResponse(
        data=[RideResponse.model_validate(ride) for ride in rides],
        page=page,
        limit=effective_limit,
        total=total,
    )


@router.post("", response_model=RideResponse, status_code=status.HTTP_201_CREATED)
async def create_ride(
    ride_data: RideCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Create a ride owned by the caller. It starts unassigned."""
    ride = await ride_workflow.create_ride(db, actor, ride_data)

    await log_event(
        db=db,
        action=AuditAction.RIDE_CREATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": ride.id, "type": ride.type.value}
    )

    return RideResponse.model_validate(ride)


@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Get a ride. Rides outside the caller's scope return 404."""
    ride = await ride_queries.get_ride(db, ride_id, actor)
    return RideResponse.model_validate(ride)


@router.patch("/{ride_id}", response_model=RideResponse)
async def update_ride(
    update_data: RideUpdate,
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Edit descriptive ride fields (creator or dispatcher/admin)."""
    ride = await ride_workflow.update_ride(db, ride_id, actor, update_data)

    await log_event(
        db=db,
        action=AuditAction.RIDE_UPDATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": ride.id, "fields": sorted(update_data.model_dump(exclude_unset=True))}
    )

    return RideResponse.model_validate(ride)


@router.delete("/{ride_id}")
async def delete_ride(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Delete a ride with its shares and claims (creator or dispatcher/admin)."""
    deleted_claims, deleted_shares = await ride_workflow.delete_ride(db, ride_id, actor)

    await log_event(
        db=db,
        action=AuditAction.RIDE_DELETED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": ride_id, "deleted_claims": deleted_claims, "deleted_shares": deleted_shares}
    )

    return {
        "ok": True,
        "ride_id": ride_id,
        "deleted_claims": deleted_claims,
        "deleted_shares": deleted_shares,
    }


@router.post("/{ride_id}/assign", response_model=RideActionResponse)
async def assign_driver(
    assignment: DriverAssignment,
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a driver directly.

    Validates:
    - Ride is unassigned (409 otherwise, including a lost race)
    - Target user exists, is active and holds the driver role

    Queued claims are rejected and active shares revoked in the same transaction.
    """
    ride = await ride_workflow.assign_driver(db, ride_id, assignment.driver_id, actor)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_ASSIGNED,
        actor_id=actor.id,
        actor_username=actor.username,
        target_user_id=assignment.driver_id,
        metadata={"ride_id": ride.id, "driver_id": assignment.driver_id}
    )

    return RideActionResponse(status=ride.status, ride=RideResponse.model_validate(ride))


@router.post("/{ride_id}/unassign", response_model=RideActionResponse)
async def unassign_driver(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Return an assigned ride to the unassigned pool."""
    ride, previous_driver_id = await ride_workflow.unassign_driver(db, ride_id, actor)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_UNASSIGNED,
        actor_id=actor.id,
        actor_username=actor.username,
        target_user_id=previous_driver_id,
        metadata={"ride_id": ride.id, "driver_id": previous_driver_id}
    )

    return RideActionResponse(status=ride.status, ride=RideResponse.model_validate(ride))


@router.post("/{ride_id}/status", response_model=RideActionResponse)
async def set_ride_status(
    status_update: RideStatusUpdate,
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Progress a ride.

    The assigned driver advances one step at a time; dispatchers and admins
    may jump to any later status. Completed is terminal.
    """
    ride, previous_status = await ride_workflow.set_ride_status(db, ride_id, status_update.status, actor)

    await log_event(
        db=db,
        action=AuditAction.RIDE_STATUS_CHANGED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"ride_id": ride.id, "from": previous_status.value, "to": ride.status.value}
    )

    return RideActionResponse(status=ride.status, ride=RideResponse.model_validate(ride))


@router.get("/{ride_id}/eligible-drivers", response_model=List[EligibleDriverResponse])
async def get_eligible_drivers(
    ride_id: int = Path(..., description="Ride ID"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Drivers who can currently see the ride through its shares."""
    return await list_eligible_drivers(db, ride_id, actor)


@router.get("/{ride_id}/audit", response_model=AuditTrailResponse)
async def get_ride_audit_trail(
    ride_id: int = Path(..., description="Ride ID"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Audit history of one ride, most recent first (creator or dispatcher/admin)."""
    ride = await ride_workflow.get_ride_or_404(db, ride_id)
    assert_can_access_ride(actor, ride)

    logs = await get_audit_trail(db, action=action, ride_id=ride_id, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
