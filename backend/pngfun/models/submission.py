from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Text, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from pngfun.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    photo_url: Mapped[str] = mapped_column(Text(), nullable=False)

    # Microsecond app-side timestamp: it is the ranking tie-breaker
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Caches over active votes; only ever changed by `x = x +/- amount` in SQL
    total_wld_voted: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_submission_one_per_user"),
        CheckConstraint("total_wld_voted >= 0", name="ck_submissions_total_non_negative"),
    )
