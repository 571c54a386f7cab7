from __future__ import annotations
from datetime import datetime
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pngfun.db import get_session
from pngfun.auth_deps import get_current_user
from pngfun.models.user import User
from pngfun.routes.challenges import submission_public
from pngfun.schemas.submission import SubmissionCreate, SubmissionPublic
from pngfun.services.clock import get_now
from pngfun.services.submissions import create_submission, get_submission

router = APIRouter(prefix="/submissions", tags=["submissions"])

@router.post("", response_model=SubmissionPublic, status_code=201)
async def create(
    payload: SubmissionCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    """Register a photo that was already uploaded to storage by the client."""
    sub = await create_submission(
        session, challenge_id=payload.challenge_id, user_id=user.id, photo_url=payload.photo_url, now=now
    )
    return submission_public(sub, user=user)

@router.get("/{submission_id}", response_model=SubmissionPublic)
async def get_one(submission_id: UUID, session: AsyncSession = Depends(get_session)):
    return submission_public(await get_submission(session, submission_id))
