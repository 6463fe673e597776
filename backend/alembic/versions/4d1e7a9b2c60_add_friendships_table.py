"""add friendships table

Revision ID: 4d1e7a9b2c60
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4d1e7a9b2c60"
down_revision = None
branch_labels = None
depends_on = None


status_enum = sa.Enum("pending", "friends", "blocked", name="status")


def upgrade() -> None:
    op.create_table(
        "friendships",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("from_user", sa.Uuid(), nullable=False),
        sa.Column("to_user", sa.Uuid(), nullable=False),
        sa.Column("status", status_enum, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("from_user", "to_user", name="uq_friendship_direction"),
        sa.CheckConstraint("from_user <> to_user", name="ck_friendship_not_self"),
    )
    op.create_index(op.f("ix_friendships_from_user"), "friendships", ["from_user"], unique=False)
    op.create_index(op.f("ix_friendships_to_user"), "friendships", ["to_user"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_friendships_to_user"), table_name="friendships")
    op.drop_index(op.f("ix_friendships_from_user"), table_name="friendships")
    op.drop_table("friendships")
    status_enum.drop(op.get_bind(), checkfirst=True)
