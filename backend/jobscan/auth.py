"""Resolve the current owner from a JWT bearer token or the static API key.

Issuing tokens belongs to the sign-in system; this module only verifies them.
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db
from .models import User


class TokenData(BaseModel):
    sub: Optional[str] = None  # user_id
    email: Optional[str] = None
    exp: Optional[datetime] = None


api_key_header = APIKeyHeader(name=settings.api_key_header, auto_error=False)
http_bearer = HTTPBearer(auto_error=False)


def verify_token(token: str) -> Optional[TokenData]:
    if not settings.secret_key:
        return None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    exp = payload.get("exp")
    if exp:
        exp = datetime.fromtimestamp(exp, tz=timezone.utc)
    return TokenData(sub=payload.get("sub"), email=payload.get("email"), exp=exp)


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_required(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    api_key: Optional[str] = Depends(api_key_header),
) -> User:
    """Validate JWT or API key; 401 if neither identifies an existing user."""
    if not settings.secret_key and not settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Auth not configured. Set SECRET_KEY (JWT) or API_KEY (+ API_KEY_USER_ID).",
        )

    # API key: map to configured user (no fallback)
    if settings.api_key and api_key and api_key == settings.api_key:
        if settings.api_key_user_id is None:
            raise _unauthorized("API key is enabled but API_KEY_USER_ID is not set.")
        user = await get_user_by_id(db, settings.api_key_user_id)
        if user:
            return user
        raise _unauthorized("API key user not found")

    if credentials and credentials.credentials:
        data = verify_token(credentials.credentials)
        if data and data.sub:
            try:
                user = await get_user_by_id(db, int(data.sub))
            except ValueError:
                user = None
            if user:
                return user

    raise _unauthorized("Invalid or missing credentials")
