"""
Group and invite schemas.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from dispatch_backend.app.models.ride_enums import GroupType


class GroupCreate(BaseModel):
    """Schema for creating a driver group."""
    name: str = Field(..., min_length=1, max_length=200)
    type: GroupType
    city: Optional[str] = Field(default=None, max_length=100)
    member_ids: List[int] = []


class GroupResponse(BaseModel):
    """Schema for group response."""
    id: int
    name: str
    type: GroupType
    city: Optional[str]
    owner_id: Optional[int]
    member_ids: List[int] = []
    created_at: datetime


class GroupMemberAdd(BaseModel):
    """Schema for adding a member."""
    user_id: int


class InviteCreate(BaseModel):
    """Schema for creating an invite."""
    expires_at: Optional[datetime] = None


class InviteResponse(BaseModel):
    """Schema for invite response."""
    code: str
    group_id: int
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class JoinRequest(BaseModel):
    """Schema for redeeming an invite code."""
    code: str = Field(..., min_length=1)


class JoinResponse(BaseModel):
    """Schema for a successful join."""
    ok: bool = True
    group_id: int
    group_name: str
    already_member: bool
