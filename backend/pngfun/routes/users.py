from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.db import get_session
from pngfun.auth_deps import get_current_user, require_admin
from pngfun.models.user import User
from pngfun.schemas.audit import UserAudit
from pngfun.schemas.user import (
    UserPublic, UserPrivate, ProfileUpdate, StatusUpdate, UserStatus, WinningsEntryPublic, ClaimResult,
)
from pngfun.services.audit import audit_user
from pngfun.services.settlement_backend import SettlementBackend, get_settlement_backend
from pngfun.services.users import get_user_by_username, update_profile
from pngfun.services.winnings import claim_winnings, winnings_history

router = APIRouter(prefix="/users", tags=["users"])

def public(u: User) -> UserPublic:
    return UserPublic(
        id=u.id, wallet_address=u.wallet_address, username=u.username,
        profile_picture_url=u.profile_picture_url,
        total_wins=int(u.total_wins), current_streak=int(u.current_streak),
        total_wld_earned=int(u.total_wld_earned), created_at=u.created_at,
    )

def private(u: User) -> UserPrivate:
    return UserPrivate(
        **public(u).model_dump(),
        pending_winnings=int(u.pending_winnings),
        onboarding_completed=u.onboarding_completed,
        notifications_enabled=u.notifications_enabled,
    )

@router.get("/me", response_model=UserPrivate)
async def me(user: User = Depends(get_current_user)):
    return private(user)

@router.patch("/me", response_model=UserPrivate)
async def update_me(
    payload: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return private(await update_profile(session, user.id, **payload.model_dump(exclude_none=True)))

@router.get("/me/status", response_model=UserStatus)
async def get_status(user: User = Depends(get_current_user)):
    return UserStatus(onboarding_completed=user.onboarding_completed, notifications_enabled=user.notifications_enabled)

@router.put("/me/status", response_model=UserStatus)
async def put_status(
    payload: StatusUpdate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    u = await update_profile(session, user.id, **payload.model_dump(exclude_none=True))
    return UserStatus(onboarding_completed=u.onboarding_completed, notifications_enabled=u.notifications_enabled)

@router.get("/me/winnings", response_model=list[WinningsEntryPublic])
async def my_winnings(
    limit: int = Query(default=50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    rows = await winnings_history(session, user.id, limit=limit)
    return [
        WinningsEntryPublic(
            id=e.id, type=e.type, amount=int(e.amount), challenge_id=e.challenge_id,
            submission_id=e.submission_id, note=e.note, created_at=e.created_at,
        ) for e in rows
    ]

@router.post("/me/claim", response_model=ClaimResult)
async def claim(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    backend: SettlementBackend = Depends(get_settlement_backend),
):
    return ClaimResult(**await claim_winnings(session, user.id, backend))

@router.get("/by-username/{username}", response_model=UserPublic)
async def by_username(username: str, session: AsyncSession = Depends(get_session)):
    return public(await get_user_by_username(session, username))

@router.get("/{user_id}/audit", response_model=UserAudit, dependencies=[Depends(require_admin)])
async def audit(user_id: UUID, session: AsyncSession = Depends(get_session)):
    return await audit_user(session, user_id)
