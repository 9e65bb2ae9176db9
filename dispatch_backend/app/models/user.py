"""
User database model.

Only the identity fields the dispatch core needs: who an actor is and which
roles they hold. Credentials live with the identity provider.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.enums import UserRole


class User(Base):
    """
    User model.

    A user may hold several roles at once (e.g. a dispatcher who also drives).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Role names as stored strings, e.g. ["driver"] or ["admin", "dispatcher"]
    roles = Column(JSON, default=list, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def role_set(self) -> frozenset:
        """Roles parsed into UserRole members; unknown names are ignored."""
        parsed = set()
        for name in self.roles or []:
            try:
                parsed.add(UserRole(name))
            except ValueError:
                continue
        return frozenset(parsed)

    def has_role(self, role: UserRole) -> bool:
        return role in self.role_set

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', roles={self.roles})>"
