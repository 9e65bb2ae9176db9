"""
Ride database model.

The ride is the root entity of the dispatch workflow and the serialization
point for every assignment-affecting write.
"""

from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, DateTime, Enum, JSON, Index
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.ride_enums import RideStatus, RideType


class Ride(Base):
    """
    Ride model.

    `status` and `assigned_driver_id` are only ever changed by conditional
    UPDATE statements in the workflow services, never by plain attribute writes.
    """
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - immutable after creation
    creator_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Driver assignment (set by assignment or claim approval, cleared by unassignment)
    assigned_driver_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    status = Column(
        Enum(RideStatus, name="ride_status", values_callable=enum_values),
        default=RideStatus.UNASSIGNED,
        nullable=False,
        index=True
    )
    type = Column(Enum(RideType, name="ride_type", values_callable=enum_values), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)

    # Customer and payment are embedded documents
    customer = Column(JSON, nullable=True)  # {"name": ..., "phone": ...}
    payment = Column(JSON, nullable=True)  # {"method", "paid", "driver_paid", "amount_cents"}

    # Display strings
    from_address = Column(String(500), nullable=False)
    to_address = Column(String(500), nullable=False)
    stops = Column(JSON, default=list, nullable=False)

    # Geo fields are provided by the caller, never computed here
    from_lat = Column(Float, nullable=True)
    from_lng = Column(Float, nullable=True)
    to_lat = Column(Float, nullable=True)
    to_lng = Column(Float, nullable=True)
    distance = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_rides_status_scheduled', 'status', 'scheduled_at'),
        Index('ix_rides_driver_scheduled', 'assigned_driver_id', 'scheduled_at'),
    )

    def __repr__(self):
        return f"<Ride(id={self.id}, status='{self.status.value}', driver={self.assigned_driver_id})>"
