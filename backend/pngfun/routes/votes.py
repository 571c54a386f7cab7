from __future__ import annotations
from datetime import datetime
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.db import get_session
from pngfun.auth_deps import get_current_user, require_admin
from pngfun.models.user import User
from pngfun.models.vote import Vote
from pngfun.schemas.vote import VoteCreate, VotePublic, VoteResult, VoteReversal, HasVoted
from pngfun.services.clock import get_now
from pngfun.services.policy import LedgerPolicy, get_policy
from pngfun.services.votes import cast_vote, reverse_vote, list_votes, has_voted

router = APIRouter(prefix="/votes", tags=["votes"])

def to_public(v: Vote) -> VotePublic:
    return VotePublic(
        id=v.id, submission_id=v.submission_id, voter_id=v.voter_id,
        wld_amount=int(v.wld_amount), status=v.status,
        created_at=v.created_at, reversed_at=v.reversed_at,
    )

@router.post("", response_model=VoteResult, status_code=201)
async def vote(
    payload: VoteCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    policy: LedgerPolicy = Depends(get_policy),
):
    res = await cast_vote(
        session,
        submission_id=payload.submission_id,
        voter_id=user.id,
        amount=payload.wld_amount,
        now=now,
        policy=policy,
    )
    return VoteResult(vote=to_public(res["vote"]), total_wld_voted=res["total_wld_voted"])

@router.get("", response_model=list[VotePublic])
async def get_votes(
    voter_id: UUID | None = Query(default=None),
    submission_id: UUID | None = Query(default=None),
    include_reversed: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    rows = await list_votes(
        session, voter_id=voter_id, submission_id=submission_id, include_reversed=include_reversed, limit=limit
    )
    return [to_public(v) for v in rows]

@router.get("/has-voted", response_model=HasVoted)
async def get_has_voted(
    submission_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return HasVoted(submission_id=submission_id, has_voted=await has_voted(session, submission_id, user.id))

@router.post("/{vote_id}/reverse", response_model=VoteReversal, dependencies=[Depends(require_admin)])
async def reverse(
    vote_id: UUID,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
):
    res = await reverse_vote(session, vote_id, now)
    return VoteReversal(outcome=res["outcome"], vote=to_public(res["vote"]), total_wld_voted=res["total_wld_voted"])
