# backend/publisher/api/auth.py
"""
🔐 SCHEDULED PUBLISHER - Authentication Dependencies
Bearer JWT for users, shared secret for the external timer
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..exceptions import AuthError
from ..models import User

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

# ============================================================================
# USER AUTHENTICATION
# ============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    if credentials is None:
        raise AuthError("Unauthorized")

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise AuthError("Could not validate credentials")
    except JWTError:
        raise AuthError("Could not validate credentials")

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()

    if user is None:
        raise AuthError("Could not validate credentials")

    return user

async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Get current active user"""
    if not current_user.is_active:
        raise AuthError("Inactive user")
    return current_user

# ============================================================================
# CRON SECRET
# ============================================================================

def secret_matches(provided: Optional[str]) -> bool:
    if not provided or not settings.CRON_SECRET:
        return False
    return hmac.compare_digest(provided.encode(), settings.CRON_SECRET.encode())

async def verify_cron_secret(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    secret: Optional[str] = Query(default=None),
) -> None:
    """Bearer header on every method; the `secret` query parameter only for manual GET triggers"""
    provided = credentials.credentials if credentials else None
    if provided is None and request.method == "GET":
        provided = secret

    if not secret_matches(provided):
        logger.warning(f"🚫 Rejected cron trigger {request.method} {request.url.path}")
        raise AuthError("Unauthorized")
