import asyncio
import os

from localdeals.core.db import AsyncSessionLocal, init_models
from localdeals.core.security import hash_password
from localdeals.models.user_models import User, UserRole


async def create_admin():
    email = os.getenv("ADMIN_EMAIL", "admin@localdeals.dev")
    password = os.getenv("ADMIN_PASSWORD", "admin123")

    await init_models()
    async with AsyncSessionLocal() as session:
        admin = User(
            email=email,
            first_name="Admin",
            password_hash=hash_password(password),
            role=UserRole.ADMIN.value,
            is_active=True
        )
        session.add(admin)
        await session.commit()
        print(f"Admin user {email} created!")


if __name__ == "__main__":
    asyncio.run(create_admin())
