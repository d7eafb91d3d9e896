"""
Database initialization script.
Creates all tables, the default package catalog and the default admin.
"""
import asyncio
from wifi_portal.db.database import AsyncSessionLocal, create_tables
from wifi_portal.services.auth import ensure_default_admin
from wifi_portal.services.packages import seed_default_packages


async def init_db():
    await create_tables()
    print("Database tables created successfully!")

    async with AsyncSessionLocal() as db:
        seeded = await seed_default_packages(db)
        print(f"  Seeded {seeded} packages" if seeded else "  Packages already present")
        if await ensure_default_admin(db):
            print("  Created default admin")


if __name__ == "__main__":
    asyncio.run(init_db())
