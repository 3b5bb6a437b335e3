# auth.py — Credential service for Trackify
# Features:
# - bcrypt password hashing
# - HS256 JWT access tokens with JTI
# - Registration with username / email uniqueness
# - FastAPI dependency resolving the bearer token to the current user

import os
import uuid
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from identity_store import IdentityStore
from models import User
from schemas import UserRegister, UserOut, TokenResponse

logger = logging.getLogger("trackify.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = 10

security = HTTPBearer()


class CurrentUser(BaseModel):
    id: str
    username: str
    email: Optional[str] = None


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password verification and bearer token issuance / validation"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def issue_token(user: User) -> str:
        return AuthService.create_access_token({"sub": user.id, "username": user.username})

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def validate_token(token: str) -> str:
        """Resolve a bearer token to the user id it was issued for"""
        payload = AuthService.verify_token(token)
        if payload.get("type") != "access":
            raise HTTPException(status_code=401, detail="Invalid token type")
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")
        return user_id

    @staticmethod
    def build_token_response(user: User) -> TokenResponse:
        return TokenResponse(
            access_token=AuthService.issue_token(user),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserOut(id=user.id, username=user.username, email=user.email),
        )

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        return await IdentityStore.create_user(
            username=user_data.username,
            password_hash=AuthService.hash_password(user_data.password),
            email=user_data.email,
            db=db,
        )

    @staticmethod
    async def authenticate_user(username: str, password: str, db: AsyncSession) -> Optional[User]:
        user = await IdentityStore.find_by_username(username, db)
        if not user or not AuthService.verify_password(password, user.password_hash):
            logger.info("Failed login username=%s", username)
            return None
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    user_id = AuthService.validate_token(credentials.credentials)

    user = await IdentityStore.find_by_id(user_id, db)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return CurrentUser(id=user.id, username=user.username, email=user.email)
