from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20251020_0002"
down_revision = "20251020_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("week_end", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False, server_default="OPEN"),
        sa.Column("pot", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("status IN ('OPEN','CLOSED')", name="ck_challenges_status"),
        sa.CheckConstraint("week_end >= week_start", name="ck_challenges_week_order"),
    )
    op.create_index("ix_challenges_group_id", "challenges", ["group_id"])
    # recap / streak lookups: closed challenges newest first
    op.create_index("ix_challenges_status_week_end", "challenges", ["status", "week_end"])

    op.create_table(
        "proofs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("miles", sa.Numeric(6, 2), nullable=False),
        sa.Column("activity", sa.String(length=8), nullable=False, server_default="run"),
        sa.Column("image_key", sa.Text(), nullable=True),
        sa.Column("mime_type", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("miles >= 0", name="ck_proofs_miles_non_negative"),
    )
    op.create_index("ix_proofs_challenge_id", "proofs", ["challenge_id"])
    op.create_index("ix_proofs_user_id", "proofs", ["user_id"])

def downgrade() -> None:
    op.drop_index("ix_proofs_user_id", table_name="proofs")
    op.drop_index("ix_proofs_challenge_id", table_name="proofs")
    op.drop_table("proofs")
    op.drop_index("ix_challenges_status_week_end", table_name="challenges")
    op.drop_index("ix_challenges_group_id", table_name="challenges")
    op.drop_table("challenges")
