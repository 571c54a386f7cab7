from __future__ import annotations
import secrets
from fastapi import Depends, HTTPException, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.config import settings
from pngfun.db import get_session
from pngfun.security import InvalidIdentity
from pngfun.services.identity import verified_user_id
from pngfun.models.user import User

security = HTTPBearer()

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_session)
) -> User:
    try:
        user_id = await verified_user_id(session, credentials.credentials)
    except InvalidIdentity as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = await session.get(User, user_id)
    if not user or user.archived_at is not None:
        raise HTTPException(status_code=401, detail="User not found")
    return user

async def require_admin(x_admin_key: str | None = Header(None)) -> None:
    # An unset key disables the admin surface entirely
    if not settings.admin_api_key or not x_admin_key:
        raise HTTPException(status_code=403, detail="Admin access required")
    if not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=403, detail="Admin access required")
