"""
Database seeding script for development users.

Creates one ADMIN, one RIDER and two online DRIVERs, then prints a bearer
token for each so the API can be exercised locally. Tokens are normally
issued by the identity service.
"""

import asyncio

from sqlalchemy import select

from cabbooking.app.core.jwt import create_access_token
from cabbooking.app.db.session import AsyncSessionLocal, Base, engine
from cabbooking.app.models.enums import UserRole
from cabbooking.app.models.user import User
# Registered with Base so create_all sees every table
from cabbooking.app.models.booking import Booking  # noqa: F401
from cabbooking.app.models.offer import Offer  # noqa: F401
from cabbooking.app.models.rating import Rating  # noqa: F401

SEED_USERS = [
    {"name": "admin", "phone": "+910000000001", "role": UserRole.ADMIN},
    {"name": "rider", "phone": "+910000000002", "role": UserRole.RIDER},
    {
        "name": "driver-one", "phone": "+910000000003", "role": UserRole.DRIVER,
        "is_online": True, "push_token": "dev-device-1",
        "vehicle_type": "sedan", "vehicle_number": "KA01AB1234",
    },
    {
        "name": "driver-two", "phone": "+910000000004", "role": UserRole.DRIVER,
        "is_online": True, "push_token": "dev-device-2",
        "vehicle_type": "hatchback", "vehicle_number": "KA01CD5678",
    },
]


async def seed_users():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        result = await db.execute(select(User).where(User.name == "admin"))
        if result.scalar_one_or_none():
            print("ℹ️  Seed users already exist, skipping seeding")
            return

        users = [User(**values) for values in SEED_USERS]
        db.add_all(users)
        await db.commit()

        print("\n🎉 User seeding completed successfully!\n")
        for user in users:
            token = create_access_token({"sub": user.name, "user_id": user.id, "role": user.role.value})
            print(f"  - {user.role.value:<6} {user.name:<11} id={user.id}\n    Bearer {token}")


if __name__ == "__main__":
    asyncio.run(seed_users())
