"""
Driver group API endpoints.

Groups are the audience of ride shares. Dispatchers manage membership
directly or hand out single-use invite codes.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.schemas.group import (
    GroupCreate,
    GroupMemberAdd,
    GroupResponse,
    InviteCreate,
    InviteResponse,
    JoinRequest,
    JoinResponse,
)
from dispatch_backend.app.core.dependencies import Actor, get_current_actor
from dispatch_backend.app.core.guards import require_privileged
from dispatch_backend.app.models.group import Group
from dispatch_backend.app.services import groups as group_service
from dispatch_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/groups", tags=["Groups"])


def build_group_response(group: Group, member_ids: List[int]) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        type=group.type,
        city=group.city,
        owner_id=group.owner_id,
        member_ids=member_ids,
        created_at=group.created_at,
    )


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Create a driver group (dispatcher/admin only)."""
    group = await group_service.create_group(
        db,
        actor,
        name=group_data.name,
        group_type=group_data.type,
        city=group_data.city,
        member_ids=group_data.member_ids,
    )
    members = await group_service.member_ids_by_group(db, [group.id])

    await log_event(
        db=db,
        action=AuditAction.GROUP_CREATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"group_id": group.id, "name": group.name, "members": members[group.id]}
    )

    return build_group_response(group, members[group.id])


@router.get("", response_model=List[GroupResponse])
async def list_groups(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """All groups for dispatchers/admins; the caller's own groups otherwise."""
    groups = await group_service.list_groups(db, actor)
    members = await group_service.member_ids_by_group(db, [group.id for group in groups])
    return [build_group_response(group, members[group.id]) for group in groups]


@router.post("/join", response_model=JoinResponse)
async def join_group(
    join_data: JoinRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Redeem an invite code."""
    group, already_member = await group_service.join_with_code(db, join_data.code, actor)

    if not already_member:
        await log_event(
            db=db,
            action=AuditAction.GROUP_JOINED,
            actor_id=actor.id,
            actor_username=actor.username,
            metadata={"group_id": group.id}
        )

    return JoinResponse(group_id=group.id, group_name=group.name, already_member=already_member)


@router.post("/{group_id}/members", status_code=status.HTTP_201_CREATED)
async def add_group_member(
    member_data: GroupMemberAdd,
    group_id: int = Path(..., description="Group ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Add a user to a group. Adding an existing member is a no-op."""
    added = await group_service.add_member(db, group_id, member_data.user_id)

    if added:
        await log_event(
            db=db,
            action=AuditAction.GROUP_MEMBER_ADDED,
            actor_id=actor.id,
            actor_username=actor.username,
            target_user_id=member_data.user_id,
            metadata={"group_id": group_id}
        )

    return {"ok": True, "group_id": group_id, "user_id": member_data.user_id, "added": added}


@router.delete("/{group_id}/members/{user_id}")
async def remove_group_member(
    group_id: int = Path(..., description="Group ID"),
    user_id: int = Path(..., description="User ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Remove a user from a group."""
    removed = await group_service.remove_member(db, group_id, user_id)

    if removed:
        await log_event(
            db=db,
            action=AuditAction.GROUP_MEMBER_REMOVED,
            actor_id=actor.id,
            actor_username=actor.username,
            target_user_id=user_id,
            metadata={"group_id": group_id}
        )

    return {"ok": True, "group_id": group_id, "user_id": user_id, "removed": removed}


@router.post("/{group_id}/invites", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_group_invite(
    invite_data: InviteCreate,
    group_id: int = Path(..., description="Group ID"),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db)
):
    """Create a single-use invite code (dispatcher/admin only)."""
    invite = await group_service.create_invite(db, group_id, actor, expires_at=invite_data.expires_at)

    await log_event(
        db=db,
        action=AuditAction.GROUP_INVITE_CREATED,
        actor_id=actor.id,
        actor_username=actor.username,
        metadata={"group_id": group_id, "invite_id": invite.id}
    )

    return InviteResponse.model_validate(invite)
