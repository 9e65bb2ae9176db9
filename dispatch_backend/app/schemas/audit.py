"""
Audit trail schemas.
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    target_user_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for a filtered audit trail."""
    logs: List[AuditLogResponse]
    total: int
