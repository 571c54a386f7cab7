from __future__ import annotations
from pydantic import BaseModel, StrictInt
from typing import Literal
from uuid import UUID
from datetime import datetime

class VoteCreate(BaseModel):
    submission_id: UUID
    # Range is checked by the ledger so the rejection carries its own code
    wld_amount: StrictInt

class VotePublic(BaseModel):
    id: UUID
    submission_id: UUID
    voter_id: UUID
    wld_amount: int
    status: Literal["active", "reversed"]
    created_at: datetime
    reversed_at: datetime | None = None

class VoteResult(BaseModel):
    vote: VotePublic
    total_wld_voted: int

class VoteReversal(BaseModel):
    outcome: Literal["reversed", "already_reversed"]
    vote: VotePublic
    total_wld_voted: int

class HasVoted(BaseModel):
    submission_id: UUID
    has_voted: bool
