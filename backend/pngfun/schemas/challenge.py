from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime

ChallengeStatus = Literal["scheduled", "active", "ended", "finalized"]

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str | None = None
    starts_at: datetime
    ends_at: datetime
    activate: bool = False

    @model_validator(mode="after")
    def _window(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self

class AwardPublic(BaseModel):
    user_id: UUID
    submission_id: UUID | None = None
    amount: int

class ChallengePublic(BaseModel):
    id: UUID
    title: str
    description: str | None = None
    status: ChallengeStatus
    starts_at: datetime
    ends_at: datetime
    created_at: datetime | None = None
    ended_at: datetime | None = None
    finalized_at: datetime | None = None
    prize_pool: int = 0
    submission_count: int = 0

class ChallengeTransition(BaseModel):
    """Typed outcome of close/activate/finalize."""
    outcome: str
    challenge: ChallengePublic
    awards: list[AwardPublic] = Field(default_factory=list)

class LifecycleSummary(BaseModel):
    activated: list[UUID]
    closed: list[UUID]
    finalized: list[UUID]
    skipped: list[UUID]
