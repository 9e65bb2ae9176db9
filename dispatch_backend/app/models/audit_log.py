"""
Audit Log Database Model.

Tracks dispatch decisions (assignments, approvals, status changes) for
dispute resolution and compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - RIDE_CREATED / RIDE_UPDATED / RIDE_DELETED
    - DRIVER_ASSIGNED / DRIVER_UNASSIGNED / RIDE_STATUS_CHANGED
    - SHARE_CREATED / SHARE_UPDATED / SHARE_REVOKED
    - CLAIM_QUEUED / CLAIM_APPROVED / CLAIM_REJECTED / CLAIM_WITHDRAWN
    - GROUP_* and TOKEN_REVOKED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Who was the target of the action (e.g. the driver being assigned)
    target_user_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username})>"
