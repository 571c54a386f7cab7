from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from pngfun.db import Base

class WinningsEntry(Base):
    """
    Append-only winnings history per user.
    Sign convention:
      - PAYOUT => non-negative (challenge prize share credited at finalize)
      - CLAIM  => negative (pending winnings paid out to the wallet)

    pending_winnings = Σ(amount) per user
    total_wld_earned = Σ(PAYOUT amount) per user
    total_wins       = count(PAYOUT) per user
    """
    __tablename__ = "winnings_ledger"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    # NULL for CLAIM entries
    challenge_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="RESTRICT"), index=True, nullable=True
    )
    submission_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True
    )

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # PAYOUT | CLAIM
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # sign as per convention
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        # A user is paid at most once per challenge; claims carry no challenge
        UniqueConstraint("challenge_id", "user_id", "type", name="uq_winnings_once_per_challenge"),
        CheckConstraint(
            "(type = 'PAYOUT' AND amount >= 0 AND challenge_id IS NOT NULL) OR "
            "(type = 'CLAIM' AND amount < 0)",
            name="ck_winnings_amount_sign",
        ),
    )
