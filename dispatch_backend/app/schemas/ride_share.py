"""
Ride share schemas.

Schemas for offering rides to driver groups and for the driver inbox.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime
from dispatch_backend.app.models.ride_enums import RideClaimStatus, RideStatus, ShareStatus


class ShareWindow(BaseModel):
    """Visibility window; either bound may be omitted."""
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class ShareCreate(BaseModel):
    """Schema for POST /rides/{ride_id}/shares."""
    group_id: int
    exclusive: bool = False
    priority: int = 0
    window: Optional[ShareWindow] = None


class ShareUpdate(BaseModel):
    """Schema for PATCH /ride-shares/{share_id}."""
    exclusive: Optional[bool] = None
    priority: Optional[int] = None
    window: Optional[ShareWindow] = None
    reactivate: bool = Field(default=False, description="Turn a revoked share back on (ride must be unassigned)")


class ShareResponse(BaseModel):
    """Schema for share response. `status` has expiry applied."""
    id: int
    ride_id: int
    group_id: int
    exclusive: bool
    priority: int
    window: Optional[ShareWindow]
    status: ShareStatus
    revoked_at: Optional[datetime]
    created_by: int
    created_at: datetime


class ShareActionResponse(BaseModel):
    """Acknowledgment for share mutations."""
    ok: bool = True
    status: ShareStatus
    share: ShareResponse


class InboxRide(BaseModel):
    """Driver-safe ride projection (no internal notes)."""
    id: int
    from_address: str
    to_address: str
    scheduled_at: datetime
    status: RideStatus
    from_lat: Optional[float] = None
    from_lng: Optional[float] = None
    to_lat: Optional[float] = None
    to_lng: Optional[float] = None
    customer_name: Optional[str] = None

    class Config:
        from_attributes = True


class InboxClaim(BaseModel):
    """The driver's own claim on an inbox ride."""
    claim_id: int
    status: RideClaimStatus
    created_at: datetime


class InboxItem(BaseModel):
    """One entry of the driver inbox."""
    share_id: Optional[int]
    group_id: Optional[int]
    priority: Optional[int]
    exclusive: Optional[bool]
    window: Optional[ShareWindow]
    status: Optional[ShareStatus]
    my_claim: Optional[InboxClaim] = None
    ride: InboxRide


class InboxCount(BaseModel):
    """Badge counter for the inbox."""
    tab: Literal["available", "claimed"]
    count: int
