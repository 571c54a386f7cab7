from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.config import settings
from pngfun.db import get_session
from pngfun.schemas.user import LeaderboardRow, UserRank
from pngfun.services.ranking import leaderboard, user_rank

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])

@router.get("", response_model=list[LeaderboardRow])
async def top(
    limit: int = Query(default=10, ge=1),
    include_photos: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
):
    rows = await leaderboard(session, limit=min(limit, settings.leaderboard_max_limit), include_photos=include_photos)
    return [LeaderboardRow(**r) for r in rows]

@router.get("/rank/{wallet_address}", response_model=UserRank)
async def rank(wallet_address: str, session: AsyncSession = Depends(get_session)):
    return UserRank(**await user_rank(session, wallet_address))
