"""
Security guards for role-based and ownership-based ride access control.

Two deliberately different checks:
- `ride_scope_filter` decides which rides an actor can SEE (creator or
  assigned driver, or everything for privileged roles).
- `assert_can_access_ride` decides who may MUTATE a single ride through
  edit/delete/assign/share endpoints (creator or privileged only). Assigned
  drivers progress rides through `set_ride_status`, which has its own rule.
"""

from typing import List, Optional, Protocol
from fastapi import Depends
from sqlalchemy import false, or_, true
from sqlalchemy.sql.elements import ColumnElement
from dispatch_backend.app.core.dependencies import Actor, get_current_actor
from dispatch_backend.app.core.exceptions import InsufficientPermissionsError
from dispatch_backend.app.models.enums import PRIVILEGED_ROLES, UserRole
from dispatch_backend.app.models.ride import Ride


class RideProjection(Protocol):
    """The only ride fields the access gate reads."""
    creator_id: Optional[int]
    assigned_driver_id: Optional[int]


def is_privileged(actor: Optional[Actor]) -> bool:
    """True iff the actor holds the admin or dispatcher role."""
    if actor is None:
        return False
    return bool(actor.roles & PRIVILEGED_ROLES)


def ride_scope_filter(actor: Optional[Actor]) -> ColumnElement:
    """
    Build a WHERE predicate restricting rides to those visible to the actor.

    Usage:
        query = select(Ride).where(ride_scope_filter(actor))

    Returns:
        - no actor: a predicate matching nothing
        - admin/dispatcher: a predicate matching everything
        - anyone else: rides they created or are assigned to
    """
    if actor is None or actor.id is None:
        return false()
    if is_privileged(actor):
        return true()
    return or_(
        Ride.creator_id == actor.id,
        Ride.assigned_driver_id == actor.id,
    )


def can_see_ride(actor: Optional[Actor], ride: RideProjection) -> bool:
    """In-memory twin of `ride_scope_filter` for an already loaded ride."""
    if actor is None:
        return False
    if is_privileged(actor):
        return True
    return actor.id in (ride.creator_id, ride.assigned_driver_id)


def assert_can_access_ride(actor: Optional[Actor], ride: RideProjection) -> None:
    """
    Enforce single-ride mutation rights.

    Raises:
        InsufficientPermissionsError unless the actor is privileged or created the ride
    """
    if actor is None:
        raise InsufficientPermissionsError("Forbidden")
    if is_privileged(actor):
        return
    if ride.creator_id != actor.id:
        raise InsufficientPermissionsError(
            "Access denied. Only the ride creator or a dispatcher/admin can modify this ride."
        )


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/ride-shares/{share_id}/claim")
        async def claim(actor: Actor = Depends(require_role([UserRole.DRIVER]))):
            ...

    Raises:
        InsufficientPermissionsError (403) if the actor holds none of the roles
    """
    async def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.roles & set(allowed_roles):
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        return actor

    return role_checker


async def require_privileged(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency for dispatcher/admin-only endpoints."""
    if not is_privileged(actor):
        raise InsufficientPermissionsError("Dispatcher or admin access required")
    return actor
