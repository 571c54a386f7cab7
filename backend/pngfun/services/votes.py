from __future__ import annotations
import uuid
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, update, exists, text
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic, insert_for
from pngfun.errors import (
    NotFoundError, InvalidAmount, SelfVote, ChallengeClosed, DuplicateVote, storage_guard,
)
from pngfun.models.submission import Submission
from pngfun.models.vote import Vote
from pngfun.services.clock import as_utc
from pngfun.services.policy import LedgerPolicy
from pngfun.services.submissions import lock_challenge_shared, is_open

log = structlog.get_logger()


def _check_amount(amount) -> int:
    # bool is an int subclass; True is not one WLD
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount()
    return amount


@storage_guard
async def cast_vote(
    session: AsyncSession,
    *,
    submission_id: UUID,
    voter_id: UUID,
    amount: int,
    now: datetime,
    policy: LedgerPolicy,
) -> dict:
    """
    Insert the vote and bump the submission aggregate in one transaction.
    A second active vote by the same voter hits the partial unique index and
    the aggregate is left untouched.
    """
    amount = _check_amount(amount)

    async with atomic(session):
        sub = await session.get(Submission, submission_id)
        if not sub:
            raise NotFoundError("Submission not found")
        if sub.user_id == voter_id and not policy.allow_self_vote:
            raise SelfVote()

        ch = await lock_challenge_shared(session, sub.challenge_id)
        if not ch or not is_open(ch, now):
            raise ChallengeClosed()

        stmt = (
            insert_for(session, Vote)
            .values(
                id=uuid.uuid4(),
                submission_id=submission_id,
                voter_id=voter_id,
                wld_amount=amount,
                status="active",
                created_at=as_utc(now),
            )
            .on_conflict_do_nothing(
                index_elements=["submission_id", "voter_id"],
                index_where=text("status = 'active'"),
            )
            .returning(Vote.id)
        )
        vote_id = (await session.execute(stmt)).scalar_one_or_none()
        if vote_id is None:
            log.info("vote_duplicate", submission_id=str(submission_id), voter_id=str(voter_id))
            raise DuplicateVote()

        await session.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(
                total_wld_voted=Submission.total_wld_voted + amount,
                vote_count=Submission.vote_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        vote = await session.get(Vote, vote_id)
        total = await session.scalar(select(Submission.total_wld_voted).where(Submission.id == submission_id))

    log.info("vote_cast", vote_id=str(vote_id), submission_id=str(submission_id), amount=amount)
    return {"vote": vote, "total_wld_voted": int(total)}


@storage_guard
async def reverse_vote(session: AsyncSession, vote_id: UUID, now: datetime) -> dict:
    """
    active -> reversed, subtracting exactly the vote amount.
    Only while the challenge is still open; a settled pool is never touched.
    """
    async with atomic(session):
        vote = await session.get(Vote, vote_id)
        if not vote:
            raise NotFoundError("Vote not found")
        sub = await session.get(Submission, vote.submission_id)
        ch = await lock_challenge_shared(session, sub.challenge_id)
        if not ch or not is_open(ch, now):
            raise ChallengeClosed()

        res = await session.execute(
            update(Vote)
            .where(Vote.id == vote_id, Vote.status == "active")
            .values(status="reversed", reversed_at=as_utc(now))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            outcome = "already_reversed"
        else:
            outcome = "reversed"
            await session.execute(
                update(Submission)
                .where(Submission.id == vote.submission_id)
                .values(
                    total_wld_voted=Submission.total_wld_voted - vote.wld_amount,
                    vote_count=Submission.vote_count - 1,
                )
                .execution_options(synchronize_session=False)
            )
        vote = await session.scalar(
            select(Vote).where(Vote.id == vote_id).execution_options(populate_existing=True)
        )
        total = await session.scalar(select(Submission.total_wld_voted).where(Submission.id == vote.submission_id))

    if outcome == "reversed":
        log.info("vote_reversed", vote_id=str(vote_id), amount=int(vote.wld_amount))
    return {"outcome": outcome, "vote": vote, "total_wld_voted": int(total)}


@storage_guard
async def list_votes(
    session: AsyncSession,
    *,
    voter_id: UUID | None = None,
    submission_id: UUID | None = None,
    include_reversed: bool = False,
    limit: int = 100,
) -> list[Vote]:
    q = select(Vote).order_by(Vote.created_at.desc()).limit(limit)
    if voter_id is not None:
        q = q.where(Vote.voter_id == voter_id)
    if submission_id is not None:
        q = q.where(Vote.submission_id == submission_id)
    if not include_reversed:
        q = q.where(Vote.status == "active")
    return list((await session.execute(q)).scalars().all())


@storage_guard
async def has_voted(session: AsyncSession, submission_id: UUID, voter_id: UUID) -> bool:
    return bool(await session.scalar(
        select(exists().where(
            Vote.submission_id == submission_id,
            Vote.voter_id == voter_id,
            Vote.status == "active",
        ))
    ))
