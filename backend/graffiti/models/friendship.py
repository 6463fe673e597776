import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from graffiti.db.base import Base


class FriendshipStatus(str, enum.Enum):
    PENDING = "pending"
    FRIENDS = "friends"
    BLOCKED = "blocked"


class Friendship(Base):
    """One directed relationship edge. ``from_user`` is the initiator."""

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("from_user", "to_user", name="uq_friendship_direction"),
        CheckConstraint("from_user <> to_user", name="ck_friendship_not_self"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    from_user: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    to_user: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    status: Mapped[FriendshipStatus] = mapped_column(
        Enum(
            FriendshipStatus,
            name="status",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
