"""
Database seeding script for a development dispatch team.

Creates an ADMIN, a DISPATCHER, two DRIVER users and a local driver group
holding both drivers. Run after the database is set up:

    python -m dispatch_backend.seed_users
"""

import asyncio

from sqlalchemy import select

from dispatch_backend.app.db.session import AsyncSessionLocal, Base, engine
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.group import Group, GroupMember
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.ride_enums import GroupType

SEED_USERS = [
    ("admin", "admin@dispatch.local", [UserRole.ADMIN]),
    ("dispatcher", "dispatcher@dispatch.local", [UserRole.DISPATCHER]),
    ("driver_ana", "ana@dispatch.local", [UserRole.DRIVER]),
    ("driver_ben", "ben@dispatch.local", [UserRole.DRIVER]),
]


async def seed_users():
    """
    Seed initial users and one driver group.

    Skips everything when the admin user already exists.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting user seeding...")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("ADMIN user already exists, skipping seeding")
            return

        users = {}
        for username, email, roles in SEED_USERS:
            user = User(
                email=email,
                username=username,
                name=username.replace("_", " ").title(),
                roles=[role.value for role in roles],
                is_active=True,
            )
            db.add(user)
            users[username] = user
            print(f"Created {'/'.join(role.value for role in roles)} user: {username}")

        await db.flush()

        group = Group(
            name="Downtown",
            type=GroupType.LOCAL,
            city="Springfield",
            owner_id=users["dispatcher"].id,
        )
        db.add(group)
        await db.flush()
        for username in ("driver_ana", "driver_ben"):
            db.add(GroupMember(group_id=group.id, user_id=users[username].id))

        await db.commit()

        print("\nUser seeding completed successfully!")
        print(f"Group 'Downtown' (id={group.id}) holds driver_ana and driver_ben")
        print("Mint tokens for these users with dispatch_backend.app.core.jwt.create_access_token")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_users())
