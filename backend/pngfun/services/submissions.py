from __future__ import annotations
import uuid
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic, insert_for
from pngfun.errors import NotFoundError, ValidationError, ChallengeNotActive, DuplicateSubmission, storage_guard
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.models.user import User
from pngfun.services.clock import as_utc, window_contains
from pngfun.services.ranking import rank_submissions

log = structlog.get_logger()


async def lock_challenge_shared(session: AsyncSession, challenge_id: UUID) -> Challenge | None:
    """
    FOR SHARE on the challenge row: writers into an open challenge hold it until
    commit, so a concurrent close (an UPDATE on the same row) waits for them.
    """
    return await session.scalar(
        select(Challenge)
        .where(Challenge.id == challenge_id)
        .with_for_update(read=True)
        .execution_options(populate_existing=True)
    )


def is_open(ch: Challenge, now: datetime) -> bool:
    return ch.status == "active" and window_contains(ch.starts_at, ch.ends_at, now)


@storage_guard
async def create_submission(
    session: AsyncSession, *, challenge_id: UUID, user_id: UUID, photo_url: str, now: datetime
) -> Submission:
    """
    One submission per (challenge, user). The unique constraint decides:
    the insert either returns the new row or nothing, never check-then-insert.
    """
    if not (photo_url or "").strip():
        raise ValidationError("photo_url is required")

    async with atomic(session):
        ch = await lock_challenge_shared(session, challenge_id)
        if not ch:
            raise NotFoundError("Challenge not found")
        if not is_open(ch, now):
            raise ChallengeNotActive()

        stmt = (
            insert_for(session, Submission)
            .values(
                id=uuid.uuid4(),
                challenge_id=challenge_id,
                user_id=user_id,
                photo_url=photo_url,
                created_at=as_utc(now),
                total_wld_voted=0,
                vote_count=0,
            )
            .on_conflict_do_nothing(index_elements=["challenge_id", "user_id"])
            .returning(Submission.id)
        )
        new_id = (await session.execute(stmt)).scalar_one_or_none()
        if new_id is None:
            log.info("submission_duplicate", challenge_id=str(challenge_id), user_id=str(user_id))
            raise DuplicateSubmission()

        sub = await session.get(Submission, new_id)

    log.info("submission_created", submission_id=str(sub.id), challenge_id=str(challenge_id), user_id=str(user_id))
    return sub


@storage_guard
async def get_submission(session: AsyncSession, submission_id: UUID) -> Submission:
    sub = await session.get(Submission, submission_id, populate_existing=True)
    if not sub:
        raise NotFoundError("Submission not found")
    return sub


@storage_guard
async def list_submissions(session: AsyncSession, challenge_id: UUID) -> list[dict]:
    """Submissions of a challenge in rank order, each with its rank and author."""
    ch = await session.get(Challenge, challenge_id)
    if not ch:
        raise NotFoundError("Challenge not found")

    rows = (await session.execute(
        select(Submission, User)
        .join(User, User.id == Submission.user_id)
        .where(Submission.challenge_id == challenge_id)
        .execution_options(populate_existing=True)
    )).all()
    users = {s.id: u for (s, u) in rows}

    return [
        {"submission": s, "rank": rank, "user": users[s.id]}
        for (s, rank) in rank_submissions([s for (s, _u) in rows])
    ]


@storage_guard
async def latest_photo_url(session: AsyncSession, user_id: UUID) -> str | None:
    return await session.scalar(
        select(Submission.photo_url)
        .where(Submission.user_id == user_id)
        .order_by(Submission.created_at.desc())
        .limit(1)
    )


@storage_guard
async def has_submitted(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> bool:
    """Read-only pre-check; create_submission's insert still decides."""
    return bool(await session.scalar(
        select(exists().where(Submission.challenge_id == challenge_id, Submission.user_id == user_id))
    ))
