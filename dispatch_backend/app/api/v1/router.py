"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dispatch_backend.app.api.v1.endpoints import (
    auth, rides, ride_shares, ride_claims, groups
)

router = APIRouter()

# Include authentication endpoints
router.include_router(auth.router)

# Rides: CRUD, assignment, status progression
router.include_router(rides.router)

# Sharing and driver inbox
router.include_router(ride_shares.router)

# Claim review
router.include_router(ride_claims.router)

# Driver groups and invites
router.include_router(groups.router)
