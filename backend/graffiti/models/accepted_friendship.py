import uuid
from datetime import datetime

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from graffiti.db.base import Base


class AcceptedFriendship(Base):
    # Denormalized copy of accepted friendships, one row per direction.
    # Only refresh_snapshot() writes here; it lags the friendships table.
    __tablename__ = "accepted_friendships_mv"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    friend_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, index=True)

    refreshed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
