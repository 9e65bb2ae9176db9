"""
Ride Group Share database model.

An offer of a ride to one driver group, optionally time-boxed and exclusive.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, Boolean, ForeignKey, DateTime, Enum, UniqueConstraint, Index
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.ride_enums import ShareStatus


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; SQLite hands back naive datetimes."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RideGroupShare(Base):
    """
    Ride Group Share model.

    Uniqueness per (ride, group) is enforced by a DB constraint. Shares are
    revoked, never hard-deleted (except together with their ride).
    """
    __tablename__ = "ride_group_shares"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    ride_id = Column(Integer, ForeignKey('rides.id', ondelete='CASCADE'), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey('groups.id'), nullable=False, index=True)

    exclusive = Column(Boolean, default=False, nullable=False)
    priority = Column(Integer, default=0, nullable=False)

    # Visibility window (both optional)
    starts_at = Column(DateTime(timezone=True), nullable=True, index=True)
    ends_at = Column(DateTime(timezone=True), nullable=True, index=True)

    status = Column(
        Enum(ShareStatus, name="share_status", values_callable=enum_values),
        default=ShareStatus.ACTIVE,
        nullable=False,
        index=True
    )
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('ride_id', 'group_id', name='uq_ride_group_shares_ride_group'),
        Index('ix_ride_group_shares_ride_status', 'ride_id', 'status'),
    )

    def is_window_open(self, now: datetime) -> bool:
        starts_at = as_utc(self.starts_at)
        ends_at = as_utc(self.ends_at)
        if starts_at is not None and starts_at > now:
            return False
        if ends_at is not None and ends_at <= now:
            return False
        return True

    def effective_status(self, now: datetime) -> ShareStatus:
        """Stored status with expiry applied at read time."""
        if self.status == ShareStatus.ACTIVE:
            ends_at = as_utc(self.ends_at)
            if ends_at is not None and ends_at <= now:
                return ShareStatus.EXPIRED
        return self.status

    def is_claimable(self, now: datetime) -> bool:
        return self.status == ShareStatus.ACTIVE and self.is_window_open(now)

    def __repr__(self):
        return f"<RideGroupShare(id={self.id}, ride_id={self.ride_id}, group_id={self.group_id}, status='{self.status.value}')>"
