from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, BigInteger, Boolean, DateTime, Uuid, CheckConstraint, func
from pngfun.db import Base


class User(Base):
    """
    A verified wallet holder.
    Lifetime aggregates are caches over the winnings ledger and are only
    written by settlement and claims.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_address: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(32), unique=True, index=True, nullable=True)
    profile_picture_url: Mapped[str | None] = mapped_column(Text(), nullable=True)

    onboarding_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_wld_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    pending_winnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("pending_winnings >= 0", name="ck_users_pending_non_negative"),
    )
