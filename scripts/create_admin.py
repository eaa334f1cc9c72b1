#!/usr/bin/env python3
"""Script to create an admin user."""

import asyncio
import sys
from getpass import getpass

sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from sqlalchemy import select

from app.core.database import AsyncSessionLocal, engine
from app.core.errors import EmailTaken
from app.models import Base
from app.models.user import User, UserRole
from app.services.auth_service import auth_service


async def create_admin():
    """Create an admin user interactively."""
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.role == UserRole.ADMIN))
        existing_admin = result.scalars().first()

        if existing_admin:
            print(f"An admin already exists: {existing_admin.email}")
            overwrite = input("Create another admin? (y/N): ")
            if overwrite.lower() != "y":
                print("Cancelled.")
                return

        print("\n=== Create an admin user ===\n")
        email = input("Email: ").strip()
        if not email:
            print("Email is required.")
            return

        password = getpass("Password (min 8 characters): ")
        if len(password) < 8:
            print("Password must be at least 8 characters.")
            return

        password_confirm = getpass("Confirm password: ")
        if password != password_confirm:
            print("Passwords do not match.")
            return

        first_name = input("First name (optional): ").strip() or None
        last_name = input("Last name (optional): ").strip() or None

        try:
            admin = await auth_service.create_user(
                session,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                role=UserRole.ADMIN,
            )
        except EmailTaken:
            print(f"A user with email {email} already exists.")
            return
        await session.commit()

        print("\nAdmin created.")
        print(f"   Email: {admin.email}")
        print("   Role: admin")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_admin())
