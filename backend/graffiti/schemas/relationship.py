from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from graffiti.models.friendship import FriendshipStatus


class EdgeOut(BaseModel):
    id: UUID
    from_user: UUID
    to_user: UUID
    status: FriendshipStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        frozen = True


class RelationshipState(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    FRIENDS = "friends"
    BLOCKED = "blocked"


class PairState(BaseModel):
    state: RelationshipState
    # Who sent the pending request.
    initiator: UUID | None = None
    # Everyone holding a block on the pair; two entries for a mutual block.
    blocked_by: list[UUID] = []
    edges: list[EdgeOut] = []


class Consistency(str, enum.Enum):
    # Reflects every edge committed before the query ran.
    LIVE = "live"
    # Reflects edges as of the last snapshot refresh only.
    SNAPSHOT = "snapshot"


class CountOut(BaseModel):
    count: int
    consistency: Consistency
    as_of: datetime | None = None
    max_staleness_seconds: int | None = None


class MutualFriendsOut(BaseModel):
    user_ids: list[UUID]
    consistency: Consistency = Consistency.SNAPSHOT
    as_of: datetime | None = None
    max_staleness_seconds: int | None = None


class SuggestionOut(BaseModel):
    user_id: UUID
    mutual_friend_count: int


class SuggestionsOut(BaseModel):
    suggestions: list[SuggestionOut]
    consistency: Consistency = Consistency.SNAPSHOT
    as_of: datetime | None = None
    max_staleness_seconds: int | None = None
