from __future__ import annotations
from uuid import UUID
import structlog
from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.errors import NotFoundError, storage_guard
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.models.user import User
from pngfun.models.vote import Vote
from pngfun.models.winnings import WinningsEntry

log = structlog.get_logger()

# Cached aggregates are rebuilt from history here and compared, never overwritten.


async def active_vote_totals(session: AsyncSession, challenge_id: UUID) -> dict[UUID, tuple[int, int]]:
    """submission_id -> (Σ active wld_amount, active vote count)"""
    rows = (await session.execute(
        select(Vote.submission_id, func.coalesce(func.sum(Vote.wld_amount), 0), func.count(Vote.id))
        .join(Submission, Submission.id == Vote.submission_id)
        .where(Submission.challenge_id == challenge_id, Vote.status == "active")
        .group_by(Vote.submission_id)
    )).all()
    return {sid: (int(total), int(n)) for (sid, total, n) in rows}


def compare_submissions(subs: list[Submission], recomputed: dict[UUID, tuple[int, int]]) -> list[dict]:
    mismatches = []
    for s in subs:
        total, count = recomputed.get(s.id, (0, 0))
        if int(s.total_wld_voted) != total or int(s.vote_count) != count:
            mismatches.append({
                "submission_id": s.id,
                "cached_total": int(s.total_wld_voted),
                "recomputed_total": total,
                "cached_count": int(s.vote_count),
                "recomputed_count": count,
            })
    return mismatches


@storage_guard
async def audit_challenge(session: AsyncSession, challenge_id: UUID) -> dict:
    ch = await session.get(Challenge, challenge_id)
    if not ch:
        raise NotFoundError("Challenge not found")
    subs = list((await session.execute(
        select(Submission).where(Submission.challenge_id == challenge_id).execution_options(populate_existing=True)
    )).scalars().all())
    recomputed = await active_vote_totals(session, challenge_id)
    mismatches = compare_submissions(subs, recomputed)

    if mismatches:
        log.error("audit_mismatch", challenge_id=str(challenge_id), submissions=len(mismatches))
    return {
        "challenge_id": challenge_id,
        "prize_pool": sum(int(s.total_wld_voted) for s in subs),
        "recomputed_pool": sum(t for (t, _n) in recomputed.values()),
        "ok": not mismatches,
        "mismatches": mismatches,
    }


@storage_guard
async def audit_user(session: AsyncSession, user_id: UUID) -> dict:
    user = await session.get(User, user_id, populate_existing=True)
    if not user:
        raise NotFoundError("User not found")
    pending, earned, wins = (await session.execute(
        select(
            func.coalesce(func.sum(WinningsEntry.amount), 0),
            func.coalesce(func.sum(case((WinningsEntry.type == "PAYOUT", WinningsEntry.amount), else_=0)), 0),
            func.coalesce(func.sum(case((WinningsEntry.type == "PAYOUT", 1), else_=0)), 0),
        ).where(WinningsEntry.user_id == user_id)
    )).one()

    expected = {"pending_winnings": int(pending), "total_wld_earned": int(earned), "total_wins": int(wins)}
    cached = {k: int(getattr(user, k)) for k in expected}
    ok = expected == cached
    if not ok:
        log.error("audit_mismatch", user_id=str(user_id), cached=cached, recomputed=expected)
    return {"user_id": user_id, "ok": ok, "cached": cached, "recomputed": expected}
