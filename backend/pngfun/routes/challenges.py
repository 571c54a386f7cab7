from __future__ import annotations
from datetime import datetime
from uuid import UUID
from fastapi import APIRouter, Depends, Query, UploadFile, File
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.db import get_session
from pngfun.auth_deps import get_current_user, require_admin
from pngfun.errors import ChallengeNotActive, DuplicateSubmission
from pngfun.models.challenge import Challenge
from pngfun.models.submission import Submission
from pngfun.models.user import User
from pngfun.schemas.audit import ChallengeAudit
from pngfun.schemas.challenge import ChallengeCreate, ChallengePublic, ChallengeTransition, AwardPublic, LifecycleSummary
from pngfun.schemas.submission import SubmissionPublic
from pngfun.services import challenges as registry
from pngfun.services.audit import audit_challenge
from pngfun.services.clock import get_now
from pngfun.services.lifecycle import run_lifecycle
from pngfun.services.media import validate_photo, ext_for_mime
from pngfun.services.policy import LedgerPolicy, get_policy
from pngfun.services.settlement import finalize_challenge
from pngfun.services.settlement_backend import SettlementBackend, get_settlement_backend
from pngfun.services.storage import PhotoStorage, get_photo_storage
from pngfun.services.submissions import create_submission, list_submissions, is_open, has_submitted
from pngfun.jobs.lifecycle import enqueue_finalize

router = APIRouter(prefix="/challenges", tags=["challenges"])

async def hydrate_public(session: AsyncSession, ch: Challenge) -> ChallengePublic:
    return ChallengePublic(
        id=ch.id, title=ch.title, description=ch.description, status=ch.status,
        starts_at=ch.starts_at, ends_at=ch.ends_at, created_at=ch.created_at,
        ended_at=ch.ended_at, finalized_at=ch.finalized_at,
        prize_pool=await registry.prize_pool(session, ch.id),
        submission_count=await registry.submission_count(session, ch.id),
    )

def submission_public(s: Submission, rank: int | None = None, user: User | None = None) -> SubmissionPublic:
    return SubmissionPublic(
        id=s.id, challenge_id=s.challenge_id, user_id=s.user_id, photo_url=s.photo_url,
        created_at=s.created_at, total_wld_voted=int(s.total_wld_voted), vote_count=int(s.vote_count),
        rank=rank,
        username=user.username if user else None,
        wallet_address=user.wallet_address if user else None,
    )

async def transition_public(session: AsyncSession, res: dict) -> ChallengeTransition:
    return ChallengeTransition(
        outcome=res["outcome"],
        challenge=await hydrate_public(session, res["challenge"]),
        awards=[AwardPublic(**a.model_dump()) for a in res.get("awards", [])],
    )

# ---------- reads ----------

@router.get("/active", response_model=ChallengePublic | None)
async def get_active(session: AsyncSession = Depends(get_session), now: datetime = Depends(get_now)):
    ch = await registry.get_active_challenge(session, now)
    if not ch:
        return None
    return await hydrate_public(session, ch)

@router.get("", response_model=list[ChallengePublic])
async def list_all(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
):
    rows = await registry.list_challenges(session, status=status, limit=limit)
    return [await hydrate_public(session, c) for c in rows]

@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_one(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    ch = await registry.get_challenge(session, challenge_id)
    return await hydrate_public(session, ch)

@router.get("/{challenge_id}/submissions", response_model=list[SubmissionPublic])
async def get_submissions(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    ranked = await list_submissions(session, challenge_id)
    return [submission_public(r["submission"], r["rank"], r["user"]) for r in ranked]

# ---------- participant writes ----------

@router.post("/{challenge_id}/submissions", response_model=SubmissionPublic, status_code=201)
async def submit_photo(
    challenge_id: UUID,
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    storage: PhotoStorage = Depends(get_photo_storage),
    now: datetime = Depends(get_now),
):
    # Cheap rejections first so a closed challenge or a repeat submitter never costs an upload
    ch = await registry.get_challenge(session, challenge_id)
    data = await file.read()
    mime = validate_photo(data)
    if not is_open(ch, now):
        raise ChallengeNotActive()
    if await has_submitted(session, challenge_id, user.id):
        raise DuplicateSubmission()
    photo_url = await storage.upload_photo(data, user.id, content_type=mime, ext=ext_for_mime(mime))
    sub = await create_submission(session, challenge_id=challenge_id, user_id=user.id, photo_url=photo_url, now=now)
    return submission_public(sub, user=user)

# ---------- admin ----------

@router.post("", response_model=ChallengePublic, status_code=201, dependencies=[Depends(require_admin)])
async def create(payload: ChallengeCreate, session: AsyncSession = Depends(get_session)):
    ch = await registry.create_challenge(
        session,
        title=payload.title,
        description=payload.description,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        activate=payload.activate,
    )
    return await hydrate_public(session, ch)

@router.post("/lifecycle/run", response_model=LifecycleSummary, dependencies=[Depends(require_admin)])
async def lifecycle_run(
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    policy: LedgerPolicy = Depends(get_policy),
    backend: SettlementBackend = Depends(get_settlement_backend),
):
    return await run_lifecycle(session, now, policy=policy, backend=backend)

@router.post("/{challenge_id}/activate", response_model=ChallengeTransition, dependencies=[Depends(require_admin)])
async def activate(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    return await transition_public(session, await registry.activate_challenge(session, challenge_id))

@router.post("/{challenge_id}/close", response_model=ChallengeTransition, dependencies=[Depends(require_admin)])
async def close(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    policy: LedgerPolicy = Depends(get_policy),
):
    res = await registry.close_challenge(session, challenge_id, now)
    if res["outcome"] == "closed" and policy.auto_finalize:
        enqueue_finalize(challenge_id)
    return await transition_public(session, res)

@router.post("/{challenge_id}/finalize", response_model=ChallengeTransition, dependencies=[Depends(require_admin)])
async def finalize(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    policy: LedgerPolicy = Depends(get_policy),
    backend: SettlementBackend = Depends(get_settlement_backend),
):
    res = await finalize_challenge(session, challenge_id, now=now, policy=policy, backend=backend)
    return await transition_public(session, res)

@router.get("/{challenge_id}/audit", response_model=ChallengeAudit, dependencies=[Depends(require_admin)])
async def audit(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    return await audit_challenge(session, challenge_id)
