# identity_store.py — User records: lookup by id / username / email and creation
import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ConflictError
from models import User

logger = logging.getLogger("trackify.identity")


class IdentityStore:

    @staticmethod
    async def find_by_id(user_id: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_username(username: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_email(email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_users(db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.username))
        return list(result.scalars().all())

    @staticmethod
    async def create_user(
        username: str, password_hash: str, db: AsyncSession, email: Optional[str] = None,
    ) -> User:
        """Persist a new user. Raises ConflictError when username or email is taken."""
        if await IdentityStore.find_by_username(username, db):
            raise ConflictError("Username is already in use")
        if email and await IdentityStore.find_by_email(email, db):
            raise ConflictError("Email is already in use")

        user = User(username=username, email=email, password_hash=password_hash)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration
            await db.rollback()
            raise ConflictError("Username or email is already in use")
        await db.refresh(user)

        logger.info("User registered id=%s username=%s", user.id, user.username)
        return user
