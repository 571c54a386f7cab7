from __future__ import annotations
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, update, func, text
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic, is_postgres
from pngfun.errors import (
    ValidationError, NotFoundError, StateError, OverlappingChallenge, IntegrityFault, storage_guard,
)
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.services.clock import as_utc

log = structlog.get_logger()

# ---------- helpers ----------

async def _lock_active_window(session: AsyncSession) -> None:
    """Serialize everything that can make a challenge active (xact-scoped, PG only)."""
    if is_postgres(session):
        await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:k))"), {"k": "challenges:active"})


async def _assert_no_active_overlap(
    session: AsyncSession, starts_at: datetime, ends_at: datetime, exclude_id: UUID | None = None
) -> None:
    q = (
        select(func.count()).select_from(Challenge)
        .where(
            Challenge.status == "active",
            Challenge.starts_at < ends_at,
            Challenge.ends_at > starts_at,
        )
    )
    if exclude_id is not None:
        q = q.where(Challenge.id != exclude_id)
    if int(await session.scalar(q) or 0) > 0:
        raise OverlappingChallenge()


async def _fresh(session: AsyncSession, challenge_id: UUID) -> Challenge | None:
    return await session.scalar(
        select(Challenge).where(Challenge.id == challenge_id).execution_options(populate_existing=True)
    )


async def prize_pool(session: AsyncSession, challenge_id: UUID) -> int:
    """Σ total_wld_voted over the challenge's submissions. Always recomputed."""
    total = await session.scalar(
        select(func.coalesce(func.sum(Submission.total_wld_voted), 0))
        .where(Submission.challenge_id == challenge_id)
    )
    return int(total or 0)


async def submission_count(session: AsyncSession, challenge_id: UUID) -> int:
    n = await session.scalar(
        select(func.count()).select_from(Submission).where(Submission.challenge_id == challenge_id)
    )
    return int(n or 0)

# ---------- registry ----------

@storage_guard
async def create_challenge(
    session: AsyncSession,
    *,
    title: str,
    starts_at: datetime,
    ends_at: datetime,
    description: str | None = None,
    activate: bool = False,
) -> Challenge:
    starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
    if ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at")
    if not (title or "").strip():
        raise ValidationError("title is required")

    async with atomic(session):
        if activate:
            await _lock_active_window(session)
            await _assert_no_active_overlap(session, starts_at, ends_at)
        ch = Challenge(
            title=title.strip(),
            description=description,
            starts_at=starts_at,
            ends_at=ends_at,
            status="active" if activate else "scheduled",
        )
        session.add(ch)
        await session.flush()
        await session.refresh(ch)

    log.info("challenge_created", challenge_id=str(ch.id), status=ch.status)
    return ch


@storage_guard
async def activate_challenge(session: AsyncSession, challenge_id: UUID) -> dict:
    """scheduled -> active, rejected if another active challenge overlaps."""
    async with atomic(session):
        await _lock_active_window(session)
        ch = await _fresh(session, challenge_id)
        if not ch:
            raise NotFoundError("Challenge not found")
        if ch.status != "scheduled":
            if ch.status == "active":
                return {"outcome": "already_active", "challenge": ch}
            raise StateError(f"Cannot activate a challenge that is {ch.status}")

        await _assert_no_active_overlap(session, as_utc(ch.starts_at), as_utc(ch.ends_at), exclude_id=ch.id)
        res = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id, Challenge.status == "scheduled")
            .values(status="active")
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # Lost a race against another activation
            ch = await _fresh(session, challenge_id)
            return {"outcome": "already_active", "challenge": ch}
        ch = await _fresh(session, challenge_id)

    log.info("challenge_activated", challenge_id=str(challenge_id))
    return {"outcome": "activated", "challenge": ch}


@storage_guard
async def get_active_challenge(session: AsyncSession, now: datetime) -> Challenge | None:
    """
    The single active challenge whose [starts_at, ends_at) contains `now`.
    Two matches mean the overlap guard was bypassed; that is reported, never resolved.
    """
    now = as_utc(now)
    rows = (await session.execute(
        select(Challenge)
        .where(Challenge.status == "active", Challenge.starts_at <= now, Challenge.ends_at > now)
        .order_by(Challenge.starts_at.asc())
        .limit(2)
    )).scalars().all()
    if len(rows) > 1:
        log.error("multiple_active_challenges", challenge_ids=[str(c.id) for c in rows])
        raise IntegrityFault("More than one active challenge covers this instant")
    return rows[0] if rows else None


@storage_guard
async def get_challenge(session: AsyncSession, challenge_id: UUID) -> Challenge:
    ch = await session.get(Challenge, challenge_id, populate_existing=True)
    if not ch:
        raise NotFoundError("Challenge not found")
    return ch


@storage_guard
async def list_challenges(session: AsyncSession, status: str | None = None, limit: int = 50) -> list[Challenge]:
    q = select(Challenge).order_by(Challenge.starts_at.desc()).limit(limit).execution_options(populate_existing=True)
    if status:
        q = q.where(Challenge.status == status)
    return list((await session.execute(q)).scalars().all())


@storage_guard
async def close_challenge(session: AsyncSession, challenge_id: UUID, now: datetime) -> dict:
    """
    active -> ended via compare-and-set.
    Closing twice is a no-op ("already_ended"); closing a scheduled challenge is rejected.
    """
    async with atomic(session):
        res = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id, Challenge.status == "active")
            .values(status="ended", ended_at=as_utc(now))
            .execution_options(synchronize_session=False)
        )
        ch = await _fresh(session, challenge_id)
        if res.rowcount == 1:
            outcome = "closed"
        elif not ch:
            raise NotFoundError("Challenge not found")
        elif ch.status in ("ended", "finalized"):
            outcome = "already_ended"
        else:
            raise StateError("Challenge has not started")

    if outcome == "closed":
        log.info("challenge_closed", challenge_id=str(challenge_id))
    return {"outcome": outcome, "challenge": ch}
