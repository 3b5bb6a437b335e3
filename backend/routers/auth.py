# routers/auth.py — Registration, login and profile endpoints
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService, get_current_user, CurrentUser
from database import get_db_session
from schemas import UserRegister, UserLogin, UserOut, TokenResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])
profile_router = APIRouter(tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account and log it in"""
    user = await AuthService.register_user(user_data, db)
    return AuthService.build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive an access token"""
    user = await AuthService.authenticate_user(credentials.username, credentials.password, db)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return AuthService.build_token_response(user)


@router.get("/me", response_model=UserOut)
async def get_current_user_info(user: CurrentUser = Depends(get_current_user)):
    """Get current authenticated user information"""
    return UserOut(id=user.id, username=user.username, email=user.email)


@profile_router.get("/profile", response_model=UserOut)
async def profile(user: CurrentUser = Depends(get_current_user)):
    return UserOut(id=user.id, username=user.username, email=user.email)
