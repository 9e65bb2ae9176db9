"""
Audit logging service for dispatch decisions.

Every successful workflow mutation leaves one row in `audit_logs`.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from dispatch_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Rides
    RIDE_CREATED = "RIDE_CREATED"
    RIDE_UPDATED = "RIDE_UPDATED"
    RIDE_DELETED = "RIDE_DELETED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_UNASSIGNED = "DRIVER_UNASSIGNED"
    RIDE_STATUS_CHANGED = "RIDE_STATUS_CHANGED"

    # Shares
    SHARE_CREATED = "SHARE_CREATED"
    SHARE_UPDATED = "SHARE_UPDATED"
    SHARE_REVOKED = "SHARE_REVOKED"

    # Claims
    CLAIM_QUEUED = "CLAIM_QUEUED"
    CLAIM_APPROVED = "CLAIM_APPROVED"
    CLAIM_REJECTED = "CLAIM_REJECTED"
    CLAIM_WITHDRAWN = "CLAIM_WITHDRAWN"

    # Groups
    GROUP_CREATED = "GROUP_CREATED"
    GROUP_MEMBER_ADDED = "GROUP_MEMBER_ADDED"
    GROUP_MEMBER_REMOVED = "GROUP_MEMBER_REMOVED"
    GROUP_INVITE_CREATED = "GROUP_INVITE_CREATED"
    GROUP_JOINED = "GROUP_JOINED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a dispatch event to the audit log.

    Called after the workflow transaction has committed, so the audit row
    is written in its own transaction.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        target_user_id: ID of user being acted upon (e.g. the assigned driver)
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        target_user_id=target_user_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    action: Optional[str] = None,
    ride_id: Optional[int] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.

    `ride_id` is matched against the `ride_id` key of the event metadata.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if action:
        query = query.where(AuditLog.action == action)
    if ride_id is not None:
        query = query.where(AuditLog.meta_data["ride_id"].as_integer() == ride_id)

    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())
