# routers/users.py — User directory (used to pick who to share a task with)
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFoundError
from identity_store import IdentityStore
from models import User
from schemas import UserOut

router = APIRouter(prefix="/api/users", tags=["Users"])


def _user_to_out(u: User) -> UserOut:
    return UserOut(id=u.id, username=u.username, email=u.email)


@router.get("", response_model=List[UserOut])
async def list_users(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List all registered users ordered by username"""
    users = await IdentityStore.list_users(db)
    return [_user_to_out(u) for u in users]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Get a specific user"""
    target = await IdentityStore.find_by_id(user_id, db)
    if not target:
        raise NotFoundError("User not found")
    return _user_to_out(target)
