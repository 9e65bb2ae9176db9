"""
Ride Claim database model.

A driver's request to take an offered ride. Claims queue per ride and are
resolved by approval, rejection or withdrawal.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.ride_enums import RideClaimStatus


class RideClaim(Base):
    """
    Ride Claim model.

    Enforces through partial unique indexes:
    - one QUEUED claim per (ride, driver)
    - one APPROVED claim per ride
    """
    __tablename__ = "ride_claims"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    ride_id = Column(Integer, ForeignKey('rides.id', ondelete='CASCADE'), nullable=False, index=True)
    share_id = Column(Integer, ForeignKey('ride_group_shares.id', ondelete='SET NULL'), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    status = Column(
        Enum(RideClaimStatus, name="ride_claim_status", values_callable=enum_values),
        default=RideClaimStatus.QUEUED,
        nullable=False,
        index=True
    )

    # Resolution
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ux_ride_claims_queued_driver', 'ride_id', 'driver_id', unique=True,
              postgresql_where=text("status = 'queued'"),
              sqlite_where=text("status = 'queued'")),
        Index('ux_ride_claims_approved_ride', 'ride_id', unique=True,
              postgresql_where=text("status = 'approved'"),
              sqlite_where=text("status = 'approved'")),
    )

    def __repr__(self):
        return f"<RideClaim(id={self.id}, ride_id={self.ride_id}, driver_id={self.driver_id}, status='{self.status.value}')>"
