# seed.py — Create the demo account used for local development
#   python seed.py
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from database import init_db, close_db, get_db_context
from identity_store import IdentityStore
from models import User

logger = logging.getLogger("trackify.seed")

DEMO_USERNAME = "john"
DEMO_EMAIL = "john@example.com"
DEMO_PASSWORD = "changeme"


async def seed_demo_user(db: AsyncSession) -> User:
    """Create the demo user unless it already exists"""
    existing = await IdentityStore.find_by_username(DEMO_USERNAME, db)
    if existing:
        return existing
    return await IdentityStore.create_user(
        username=DEMO_USERNAME,
        password_hash=AuthService.hash_password(DEMO_PASSWORD),
        email=DEMO_EMAIL,
        db=db,
    )


async def main():
    await init_db()
    try:
        async with get_db_context() as db:
            user = await seed_demo_user(db)
            logger.info("Seeded demo user id=%s username=%s", user.id, user.username)
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s %(message)s")
    asyncio.run(main())
