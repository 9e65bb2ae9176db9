"""
Driver Group database models.

Groups are the audience of ride shares: a share offers a ride to every
member of one group.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import enum_values
from dispatch_backend.app.models.ride_enums import GroupType


class Group(Base):
    """Driver group model."""
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    type = Column(Enum(GroupType, name="group_type", values_callable=enum_values), nullable=False)
    city = Column(String(100), nullable=True)

    owner_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}', type='{self.type.value}')>"


class GroupMember(Base):
    """Membership of a user in a group (composite primary key)."""
    __tablename__ = "group_members"

    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True, index=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<GroupMember(group_id={self.group_id}, user_id={self.user_id})>"
