"""add accepted friendships snapshot

Revision ID: 7f3b2e8c1a94
Revises: 4d1e7a9b2c60
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7f3b2e8c1a94"
down_revision = "4d1e7a9b2c60"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "accepted_friendships_mv",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("friend_id", sa.Uuid(), nullable=False),
        sa.Column("refreshed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "friend_id"),
    )
    op.create_index(
        op.f("ix_accepted_friendships_mv_friend_id"),
        "accepted_friendships_mv",
        ["friend_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_accepted_friendships_mv_friend_id"), table_name="accepted_friendships_mv")
    op.drop_table("accepted_friendships_mv")
