"""
Authentication dependencies for FastAPI.

Resolves the bearer token of a request into an explicit `Actor`. The core
never authenticates credentials itself; it only trusts signed tokens and
re-checks that the user still exists and is active.
"""

from dataclasses import dataclass, field
from typing import FrozenSet
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from dispatch_backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError, TokenRevokedError
from dispatch_backend.app.core.jwt import decode_access_token
from dispatch_backend.app.core.token_revocation import is_token_revoked
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a workflow operation."""
    id: int
    roles: FrozenSet[UserRole] = field(default_factory=frozenset)
    username: str = ""

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, roles=user.role_set, username=user.username)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Actor:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been explicitly revoked
    3. Verifies user still exists and is active (roles are read from the DB,
       not trusted from the token)

    Raises:
        AuthenticationError (401) / TokenRevokedError (401) / InsufficientPermissionsError (403)
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    token = credentials.credentials

    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    # 2. Check if this specific token has been revoked
    if await is_token_revoked(token):
        raise TokenRevokedError()

    # 3. Real-time database check
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    return Actor.from_user(user)


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Raw bearer token of the request (used by logout)."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return credentials.credentials
