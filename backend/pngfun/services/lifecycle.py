from __future__ import annotations
from datetime import datetime
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pngfun.errors import OverlappingChallenge, IntegrityFault, StateError, storage_guard
from pngfun.models.challenge import Challenge
from pngfun.services.challenges import activate_challenge, close_challenge
from pngfun.services.clock import as_utc
from pngfun.services.policy import LedgerPolicy
from pngfun.services.settlement import finalize_challenge
from pngfun.services.settlement_backend import SettlementBackend

log = structlog.get_logger()


@storage_guard
async def run_lifecycle(
    session: AsyncSession, now: datetime, *, policy: LedgerPolicy, backend: SettlementBackend
) -> dict:
    """
    One scheduler sweep:
      1. scheduled challenges whose window has started -> active
      2. active challenges past ends_at -> ended
      3. ended challenges -> finalized (when auto-finalize is on)
    Each step goes through the same compare-and-set as the manual operations,
    so overlapping sweeps are harmless.
    """
    now = as_utc(now)
    summary = {"activated": [], "closed": [], "finalized": [], "skipped": []}

    due = (await session.execute(
        select(Challenge.id)
        .where(Challenge.status == "scheduled", Challenge.starts_at <= now, Challenge.ends_at > now)
        .order_by(Challenge.starts_at.asc())
    )).scalars().all()
    for cid in due:
        try:
            res = await activate_challenge(session, cid)
        except OverlappingChallenge:
            log.warning("lifecycle_activate_skipped", challenge_id=str(cid), reason="overlap")
            summary["skipped"].append(cid)
            continue
        if res["outcome"] == "activated":
            summary["activated"].append(cid)

    expired = (await session.execute(
        select(Challenge.id).where(Challenge.status == "active", Challenge.ends_at <= now)
    )).scalars().all()
    for cid in expired:
        res = await close_challenge(session, cid, now)
        if res["outcome"] == "closed":
            summary["closed"].append(cid)

    if policy.auto_finalize:
        ended = (await session.execute(
            select(Challenge.id).where(Challenge.status == "ended").order_by(Challenge.starts_at.asc())
        )).scalars().all()
        for cid in ended:
            try:
                res = await finalize_challenge(session, cid, now=now, policy=policy, backend=backend)
            except IntegrityFault:
                # Left ended for an operator to look at
                log.error("lifecycle_finalize_failed", challenge_id=str(cid))
                summary["skipped"].append(cid)
                continue
            except StateError:
                # An earlier day is still unsettled
                log.warning("lifecycle_finalize_blocked", challenge_id=str(cid))
                summary["skipped"].append(cid)
                continue
            if res["outcome"] == "finalized":
                summary["finalized"].append(cid)

    await session.commit()
    log.info("lifecycle_tick", **{k: len(v) for k, v in summary.items()})
    return summary
