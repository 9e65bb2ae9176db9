"""
Authentication Pydantic schemas.

Response schemas for the resolved-actor and logout endpoints.
"""

from pydantic import BaseModel, Field
from typing import List
from dispatch_backend.app.models.enums import UserRole


class ActorResponse(BaseModel):
    """
    Schema for the resolved caller.

    Used by GET /auth/me endpoint.
    """
    id: int
    username: str
    roles: List[UserRole]
    is_privileged: bool = Field(..., description="Holds the admin or dispatcher role")


class LogoutResponse(BaseModel):
    """Schema for POST /auth/logout."""
    ok: bool
    revoked: bool
