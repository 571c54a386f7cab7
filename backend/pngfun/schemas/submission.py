from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class SubmissionCreate(BaseModel):
    challenge_id: UUID
    photo_url: str = Field(min_length=1)


class SubmissionPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    photo_url: str
    created_at: datetime
    total_wld_voted: int
    vote_count: int = 0
    rank: int | None = None
    username: str | None = None
    wallet_address: str | None = None
