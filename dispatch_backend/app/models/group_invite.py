"""
Group Invite database model.

Single-use codes that onboard drivers into a group.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class GroupInvite(Base):
    """Group invite model. `code` is globally unique."""
    __tablename__ = "group_invites"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    used_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<GroupInvite(id={self.id}, group_id={self.group_id}, used={self.used_by is not None})>"
