"""
Ride claim schemas.
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from dispatch_backend.app.models.ride_enums import RideClaimStatus


class ClaimResponse(BaseModel):
    """Schema for claim response."""
    id: int
    ride_id: int
    share_id: Optional[int]
    driver_id: int
    status: RideClaimStatus
    decided_at: Optional[datetime]
    decided_by_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class ClaimQueuedResponse(BaseModel):
    """Response after a driver queues a claim."""
    ok: bool = True
    status: RideClaimStatus
    claim_id: int
    ride_id: int
    share_id: int


class ClaimActionResponse(BaseModel):
    """
    Acknowledgment for approve/reject/withdraw.

    `status` is the ride status for approvals and the claim status otherwise.
    """
    ok: bool = True
    status: str
    claim_id: int
    ride_id: int
    claim_status: RideClaimStatus
    assigned_driver_id: Optional[int] = None


class EligibleDriverResponse(BaseModel):
    """A driver who can currently see (and claim) a ride."""
    driver_id: int
    username: str
    name: Optional[str]
    best_priority: int
    group_ids: List[int]
    claim_id: Optional[int] = None
    claim_status: Optional[RideClaimStatus] = None

