from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

class UserPublic(BaseModel):
    id: UUID
    wallet_address: str
    username: str | None = None
    profile_picture_url: str | None = None
    total_wins: int
    current_streak: int
    total_wld_earned: int
    created_at: datetime

class UserPrivate(UserPublic):
    pending_winnings: int
    onboarding_completed: bool
    notifications_enabled: bool

class ProfileUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=32)
    profile_picture_url: str | None = None

class StatusUpdate(BaseModel):
    onboarding_completed: bool | None = None
    notifications_enabled: bool | None = None

class UserStatus(BaseModel):
    onboarding_completed: bool
    notifications_enabled: bool

class LeaderboardRow(BaseModel):
    rank: int
    user_id: UUID
    wallet_address: str
    username: str | None = None
    profile_picture_url: str | None = None
    total_wins: int
    current_streak: int
    total_wld_earned: int
    latest_photo_url: str | None = None

class UserRank(BaseModel):
    user_id: UUID
    wallet_address: str
    rank: int
    wld: int
    users_ahead: int

class WinningsEntryPublic(BaseModel):
    id: UUID
    type: Literal["PAYOUT", "CLAIM"]
    amount: int
    challenge_id: UUID | None = None
    submission_id: UUID | None = None
    note: str | None = None
    created_at: datetime

class ClaimResult(BaseModel):
    outcome: Literal["claimed", "nothing_to_claim"]
    amount: int
    entry_id: UUID | None = None
