from __future__ import annotations
from typing import Iterable, Protocol, TypeVar
from uuid import UUID
from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.errors import NotFoundError, storage_guard
from pngfun.models.submission import Submission
from pngfun.models.user import User
from pngfun.services.clock import as_utc


class Rankable(Protocol):
    id: UUID
    total_wld_voted: int
    created_at: datetime


S = TypeVar("S", bound=Rankable)

# ---------- pure: submissions within a challenge ----------

def submission_sort_key(s: Rankable) -> tuple:
    # value desc, then earliest submission, then id so equal timestamps still order
    return (-int(s.total_wld_voted or 0), as_utc(s.created_at), str(s.id))


def rank_submissions(subs: Iterable[S]) -> list[tuple[S, int]]:
    """
    Rank = 1 + number of submissions ordered ahead of this one.
    Ties on value go to the earlier submission, so ranks are unique.
    """
    ordered = sorted(subs, key=submission_sort_key)
    return [(s, idx + 1) for idx, s in enumerate(ordered)]


def top_submissions(ranked: list[tuple[S, int]]) -> list[S]:
    """All submissions tied at the maximum value, in rank order."""
    if not ranked:
        return []
    best = int(ranked[0][0].total_wld_voted or 0)
    return [s for (s, _r) in ranked if int(s.total_wld_voted or 0) == best]

# ---------- pure: users across challenges ----------

def rank_users(users: Iterable[User]) -> list[tuple[User, int]]:
    """
    Order by lifetime earnings desc, user id asc.
    Rank = 1 + count of users with strictly greater earnings (ties share a rank).
    """
    ordered = sorted(users, key=lambda u: (-int(u.total_wld_earned or 0), str(u.id)))
    out: list[tuple[User, int]] = []
    prev_value: int | None = None
    prev_rank = 0
    for idx, u in enumerate(ordered):
        value = int(u.total_wld_earned or 0)
        rank = prev_rank if value == prev_value else idx + 1
        out.append((u, rank))
        prev_value, prev_rank = value, rank
    return out

# ---------- reads ----------

@storage_guard
async def leaderboard(session: AsyncSession, limit: int = 10, include_photos: bool = False) -> list[dict]:
    """Top-N users by lifetime WLD earned, optionally with their latest photo."""
    users = (await session.execute(
        select(User)
        .where(User.archived_at.is_(None))
        .order_by(User.total_wld_earned.desc(), User.id.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )).scalars().all()

    # The page is a prefix of the global order, so ranks computed on it are global ranks
    ranked = rank_users(users)

    photos: dict[UUID, str] = {}
    if include_photos and users:
        rows = (await session.execute(
            select(Submission.user_id, Submission.photo_url)
            .where(Submission.user_id.in_([u.id for u in users]))
            .order_by(Submission.created_at.desc())
        )).all()
        for uid, url in rows:
            photos.setdefault(uid, url)

    return [
        {
            "rank": rank,
            "user_id": u.id,
            "wallet_address": u.wallet_address,
            "username": u.username,
            "profile_picture_url": u.profile_picture_url,
            "total_wins": int(u.total_wins),
            "current_streak": int(u.current_streak),
            "total_wld_earned": int(u.total_wld_earned),
            "latest_photo_url": photos.get(u.id) if include_photos else None,
        }
        for (u, rank) in ranked
    ]


@storage_guard
async def user_rank(session: AsyncSession, wallet_address: str) -> dict:
    user = await session.scalar(
        select(User).where(User.wallet_address == wallet_address.lower()).execution_options(populate_existing=True)
    )
    if not user:
        raise NotFoundError("User not found")
    earned = int(user.total_wld_earned or 0)
    ahead = await session.scalar(
        select(func.count()).select_from(User)
        .where(User.archived_at.is_(None), User.total_wld_earned > earned)
    ) or 0
    return {
        "user_id": user.id,
        "wallet_address": user.wallet_address,
        "rank": int(ahead) + 1,
        "wld": earned,
        "users_ahead": int(ahead),
    }
