"""
Driver group and invite management.
"""

import logging
import secrets
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.dependencies import Actor
from dispatch_backend.app.core.exceptions import BusinessValidationError, ResourceNotFoundError
from dispatch_backend.app.core.guards import is_privileged
from dispatch_backend.app.models.group import Group, GroupMember
from dispatch_backend.app.models.group_invite import GroupInvite
from dispatch_backend.app.models.ride_enums import GroupType
from dispatch_backend.app.models.ride_group_share import as_utc
from dispatch_backend.app.models.user import User
from dispatch_backend.app.services.ride_workflow import utcnow

logger = logging.getLogger("dispatch.groups")


async def get_group_or_404(db: AsyncSession, group_id: int) -> Group:
    result = await db.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()
    if not group:
        raise ResourceNotFoundError("Group", group_id)
    return group


async def _require_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


async def _is_member(db: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def member_ids_by_group(db: AsyncSession, group_ids: Sequence[int]) -> Dict[int, List[int]]:
    members: Dict[int, List[int]] = {group_id: [] for group_id in group_ids}
    if not group_ids:
        return members
    result = await db.execute(
        select(GroupMember.group_id, GroupMember.user_id)
        .where(GroupMember.group_id.in_(list(group_ids)))
        .order_by(GroupMember.user_id)
    )
    for group_id, user_id in result.all():
        members[group_id].append(user_id)
    return members


async def create_group(
    db: AsyncSession,
    actor: Actor,
    name: str,
    group_type: GroupType,
    city: Optional[str] = None,
    member_ids: Sequence[int] = (),
) -> Group:
    """Create a group owned by the actor, optionally seeding its members."""
    member_ids = list(dict.fromkeys(member_ids))
    for user_id in member_ids:
        await _require_user(db, user_id)

    group = Group(name=name, type=group_type, city=city, owner_id=actor.id)
    db.add(group)
    await db.flush()

    for user_id in member_ids:
        db.add(GroupMember(group_id=group.id, user_id=user_id))

    await db.commit()
    await db.refresh(group)

    logger.info("group created", extra={"group_id": group.id, "members": len(member_ids)})
    return group


async def list_groups(db: AsyncSession, actor: Actor) -> List[Group]:
    """All groups for dispatchers/admins, otherwise the actor's own groups."""
    query = select(Group).order_by(Group.name, Group.id)
    if not is_privileged(actor):
        query = query.join(GroupMember, GroupMember.group_id == Group.id).where(GroupMember.user_id == actor.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def add_member(db: AsyncSession, group_id: int, user_id: int) -> bool:
    """Add a user to a group. Returns False when already a member."""
    await get_group_or_404(db, group_id)
    await _require_user(db, user_id)
    if await _is_member(db, group_id, user_id):
        return False

    db.add(GroupMember(group_id=group_id, user_id=user_id))
    await db.commit()
    return True


async def remove_member(db: AsyncSession, group_id: int, user_id: int) -> bool:
    """Remove a user from a group. Returns False when not a member."""
    await get_group_or_404(db, group_id)
    result = await db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if not member:
        return False

    await db.delete(member)
    await db.commit()
    return True


def generate_invite_code() -> str:
    return secrets.token_hex(settings.invite_code_length // 2 or 1)


async def create_invite(
    db: AsyncSession,
    group_id: int,
    actor: Actor,
    expires_at: Optional[datetime] = None,
) -> GroupInvite:
    """Create a single-use invite code for a group."""
    await get_group_or_404(db, group_id)

    expires_at = as_utc(expires_at)
    if expires_at is not None and expires_at <= utcnow():
        raise BusinessValidationError("Invite expiry must be in the future")

    invite = GroupInvite(
        group_id=group_id,
        code=generate_invite_code(),
        created_by=actor.id,
        expires_at=expires_at,
    )
    db.add(invite)
    await db.commit()
    await db.refresh(invite)
    return invite


async def join_with_code(db: AsyncSession, code: str, actor: Actor) -> Tuple[Group, bool]:
    """
    Redeem an invite code for the actor.

    An actor who is already a member leaves the invite unused.

    Returns:
        (group, already_member)

    Raises:
        BusinessValidationError: unknown, used or expired code
    """
    result = await db.execute(select(GroupInvite).where(GroupInvite.code == code.strip()))
    invite = result.scalar_one_or_none()
    if not invite:
        raise BusinessValidationError("Invalid invite code")
    if invite.used_by is not None:
        raise BusinessValidationError("Invite code has already been used")
    now = utcnow()
    if invite.expires_at is not None and as_utc(invite.expires_at) <= now:
        raise BusinessValidationError("Invite code has expired")

    group = await get_group_or_404(db, invite.group_id)
    if await _is_member(db, group.id, actor.id):
        return group, True

    claimed = await db.execute(
        update(GroupInvite)
        .where(GroupInvite.id == invite.id, GroupInvite.used_by.is_(None))
        .values(used_by=actor.id, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        await db.rollback()
        raise BusinessValidationError("Invite code has already been used")

    db.add(GroupMember(group_id=group.id, user_id=actor.id))
    await db.commit()
    await db.refresh(group)

    logger.info("group joined", extra={"group_id": group.id, "user_id": actor.id})
    return group, False
