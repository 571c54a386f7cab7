from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID

class SubmissionMismatch(BaseModel):
    submission_id: UUID
    cached_total: int
    recomputed_total: int
    cached_count: int
    recomputed_count: int

class ChallengeAudit(BaseModel):
    challenge_id: UUID
    prize_pool: int
    recomputed_pool: int
    ok: bool
    mismatches: list[SubmissionMismatch]

class UserAudit(BaseModel):
    user_id: UUID
    ok: bool
    cached: dict[str, int]
    recomputed: dict[str, int]
