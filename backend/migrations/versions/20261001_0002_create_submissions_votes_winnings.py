from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("photo_url", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("total_wld_voted", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_submission_one_per_user"),
        sa.CheckConstraint("total_wld_voted >= 0", name="ck_submissions_total_non_negative"),
    )
    op.create_index("ix_submissions_challenge_id", "submissions", ["challenge_id"])
    op.create_index("ix_submissions_user_id", "submissions", ["user_id"])

    op.create_table(
        "votes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("submission_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("voter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("wld_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("reversed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("wld_amount > 0", name="ck_votes_amount_positive"),
        sa.CheckConstraint("status IN ('active','reversed')", name="ck_votes_status"),
    )
    op.create_index("ix_votes_submission_id", "votes", ["submission_id"])
    op.create_index("ix_votes_voter_id", "votes", ["voter_id"])
    # One active vote per voter per submission; reversed rows are history
    op.create_index(
        "uq_vote_once_per_voter", "votes", ["submission_id", "voter_id"],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "winnings_ledger",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("submission_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("challenge_id", "user_id", "type", name="uq_winnings_once_per_challenge"),
        sa.CheckConstraint(
            "(type = 'PAYOUT' AND amount >= 0 AND challenge_id IS NOT NULL) OR "
            "(type = 'CLAIM' AND amount < 0)",
            name="ck_winnings_amount_sign",
        ),
    )
    op.create_index("ix_winnings_ledger_user_id", "winnings_ledger", ["user_id"])
    op.create_index("ix_winnings_ledger_challenge_id", "winnings_ledger", ["challenge_id"])

def downgrade() -> None:
    op.drop_index("ix_winnings_ledger_challenge_id", table_name="winnings_ledger")
    op.drop_index("ix_winnings_ledger_user_id", table_name="winnings_ledger")
    op.drop_table("winnings_ledger")
    op.drop_index("uq_vote_once_per_voter", table_name="votes")
    op.drop_index("ix_votes_voter_id", table_name="votes")
    op.drop_index("ix_votes_submission_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_submissions_user_id", table_name="submissions")
    op.drop_index("ix_submissions_challenge_id", table_name="submissions")
    op.drop_table("submissions")
