"""
Ride schemas.

Schemas for ride CRUD, listing, assignment and status progression.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from dispatch_backend.app.models.ride_enums import RideStatus, RideType, PaymentMethod


class CustomerInfo(BaseModel):
    """Embedded customer contact."""
    name: Optional[str] = None
    phone: Optional[str] = None


class PaymentInfo(BaseModel):
    """Embedded payment document."""
    method: Optional[PaymentMethod] = None
    paid: bool = False
    driver_paid: bool = False
    amount_cents: Optional[int] = Field(default=None, ge=0)


class RideBase(BaseModel):
    """Descriptive ride fields shared by create and response."""
    from_address: str = Field(..., min_length=1, max_length=500)
    to_address: str = Field(..., min_length=1, max_length=500)
    stops: List[str] = []
    scheduled_at: datetime
    type: RideType
    customer: Optional[CustomerInfo] = None
    payment: Optional[PaymentInfo] = None
    from_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    from_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    to_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    to_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    distance: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class RideCreate(RideBase):
    """Schema for creating a ride. Rides always start unassigned."""
    pass


class RideUpdate(BaseModel):
    """
    Schema for editing a ride.

    Status and driver are deliberately absent: they only change through
    assign/unassign/claim approval/status endpoints.
    """
    from_address: Optional[str] = Field(default=None, min_length=1, max_length=500)
    to_address: Optional[str] = Field(default=None, min_length=1, max_length=500)
    stops: Optional[List[str]] = None
    scheduled_at: Optional[datetime] = None
    type: Optional[RideType] = None
    customer: Optional[CustomerInfo] = None
    payment: Optional[PaymentInfo] = None
    from_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    from_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    to_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    to_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    distance: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class RideResponse(RideBase):
    """Schema for ride response."""
    id: int
    creator_id: int
    assigned_driver_id: Optional[int]
    status: RideStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RideListResponse(BaseModel):
    """Paginated ride list envelope."""
    data: List[RideResponse]
    page: int
    limit: int
    total: int


class DriverAssignment(BaseModel):
    """Schema for assigning a driver to a ride."""
    driver_id: int


class RideStatusUpdate(BaseModel):
    """Schema for progressing a ride."""
    status: RideStatus


class RideActionResponse(BaseModel):
    """Minimal acknowledgment for ride workflow actions."""
    ok: bool = True
    status: RideStatus
    ride: RideResponse
