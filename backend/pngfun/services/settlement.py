from __future__ import annotations
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.db import atomic
from pngfun.errors import NotFoundError, StateError, IntegrityFault, storage_guard
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.models.user import User
from pngfun.models.winnings import WinningsEntry
from pngfun.services.audit import active_vote_totals, compare_submissions
from pngfun.services.challenges import prize_pool
from pngfun.services.clock import as_utc
from pngfun.services.policy import LedgerPolicy
from pngfun.services.ranking import rank_submissions, top_submissions
from pngfun.services.settlement_backend import Award, SettlementBackend

log = structlog.get_logger()

# ---------- pure ----------

def split_pool(pool: int, n: int) -> list[int]:
    """Equal integer shares; the remainder units go to the first winners."""
    if n <= 0:
        return []
    base, rem = divmod(int(pool), n)
    return [base + (1 if i < rem else 0) for i in range(n)]


def pick_winners(subs: list[Submission], tie_policy: str) -> list[tuple[Submission, int]]:
    """
    Winners and their shares. Nobody wins an empty pool.
    split    -> every submission tied at the top shares the pool
    earliest -> the earliest tied submission takes it all
    """
    pool = sum(int(s.total_wld_voted) for s in subs)
    if pool <= 0:
        return []
    winners = top_submissions(rank_submissions(subs))
    if tie_policy == "earliest":
        winners = winners[:1]
    return list(zip(winners, split_pool(pool, len(winners))))

# ---------- db ----------

async def _preceding_challenge(session: AsyncSession, ch: Challenge) -> Challenge | None:
    """The challenge immediately before this one in start order."""
    return await session.scalar(
        select(Challenge)
        .where(
            Challenge.id != ch.id,
            Challenge.starts_at < ch.starts_at,
            Challenge.status != "scheduled",
        )
        .order_by(Challenge.starts_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )


async def _winner_ids(session: AsyncSession, challenge_id: UUID) -> set[UUID]:
    rows = (await session.execute(
        select(WinningsEntry.user_id).where(WinningsEntry.challenge_id == challenge_id, WinningsEntry.type == "PAYOUT")
    )).scalars().all()
    return set(rows)


async def _prior_awards(session: AsyncSession, challenge_id: UUID) -> list[Award]:
    rows = (await session.execute(
        select(WinningsEntry)
        .where(WinningsEntry.challenge_id == challenge_id, WinningsEntry.type == "PAYOUT")
        .order_by(WinningsEntry.amount.desc(), WinningsEntry.created_at.asc())
    )).scalars().all()
    return [Award(user_id=e.user_id, submission_id=e.submission_id, amount=int(e.amount)) for e in rows]


@storage_guard
async def finalize_challenge(
    session: AsyncSession,
    challenge_id: UUID,
    *,
    now: datetime,
    policy: LedgerPolicy,
    backend: SettlementBackend,
) -> dict:
    """
    ended -> finalized. Whoever wins the compare-and-set settles, in the same
    transaction; everyone else gets "already_finalized" and the recorded awards.
    """
    async with atomic(session):
        res = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id, Challenge.status == "ended")
            .values(status="finalized", finalized_at=as_utc(now))
            .execution_options(synchronize_session=False)
        )
        ch = await session.scalar(
            select(Challenge).where(Challenge.id == challenge_id).execution_options(populate_existing=True)
        )
        if res.rowcount != 1:
            if not ch:
                raise NotFoundError("Challenge not found")
            if ch.status != "finalized":
                raise StateError("Challenge must be ended before it can be finalized")
            return {
                "outcome": "already_finalized",
                "challenge": ch,
                "prize_pool": await prize_pool(session, challenge_id),
                "awards": await _prior_awards(session, challenge_id),
            }

        # Streaks build on the previous day's settled winners, so days settle in order
        prev = await _preceding_challenge(session, ch)
        if prev is not None and prev.status != "finalized":
            log.warning("finalize_out_of_order", challenge_id=str(challenge_id), preceding_id=str(prev.id))
            raise StateError("The preceding challenge must be finalized first")

        subs = list((await session.execute(
            select(Submission)
            .where(Submission.challenge_id == challenge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalars().all())

        # Never pay out of a pool that disagrees with the vote history
        mismatches = compare_submissions(subs, await active_vote_totals(session, challenge_id))
        if mismatches:
            log.error("audit_mismatch", challenge_id=str(challenge_id), submissions=len(mismatches))
            raise IntegrityFault("Prize pool does not match recorded votes")

        pool = sum(int(s.total_wld_voted) for s in subs)
        winners = pick_winners(subs, policy.tie_policy)
        winner_ids = {s.user_id for (s, _share) in winners}
        previous = await _winner_ids(session, prev.id) if prev is not None else set()

        awards: list[Award] = []
        for s, share in winners:
            streak = User.current_streak + 1 if s.user_id in previous else 1
            await session.execute(
                update(User)
                .where(User.id == s.user_id)
                .values(
                    pending_winnings=User.pending_winnings + share,
                    total_wld_earned=User.total_wld_earned + share,
                    total_wins=User.total_wins + 1,
                    current_streak=streak,
                )
                .execution_options(synchronize_session=False)
            )
            session.add(WinningsEntry(
                user_id=s.user_id,
                challenge_id=challenge_id,
                submission_id=s.id,
                type="PAYOUT",
                amount=share,
                note="challenge_prize",
            ))
            awards.append(Award(user_id=s.user_id, submission_id=s.id, amount=share))

        losers = [s.user_id for s in subs if s.user_id not in winner_ids]
        if losers:
            await session.execute(
                update(User)
                .where(User.id.in_(losers))
                .values(current_streak=0)
                .execution_options(synchronize_session=False)
            )
        await session.flush()

        # Inside the transaction: a failing backend rolls the finalize back and it can be retried
        await backend.settle(challenge_id, awards)

    log.info("challenge_finalized", challenge_id=str(challenge_id), prize_pool=pool, winners=len(awards))
    return {"outcome": "finalized", "challenge": ch, "prize_pool": pool, "awards": awards}
