"""Read-only aggregates over the friendship graph.

Two guarantees, reported on every result via ``consistency``:

* ``LIVE``: counted straight off the friendships table. Exact for every
  edge committed before the query.
* ``SNAPSHOT``: read from ``accepted_friendships_mv``, which only changes
  when ``refresh_snapshot()`` runs. An external job does that on a fixed
  schedule. Engine writes never refresh it, so friendships accepted or
  removed since ``as_of`` are not visible, for up to
  ``max_staleness_seconds``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, insert, or_, select, union
from sqlalchemy.orm import Session, aliased

from graffiti.core.settings import settings
from graffiti.db.session import Database
from graffiti.models.accepted_friendship import AcceptedFriendship
from graffiti.models.friendship import Friendship, FriendshipStatus
from graffiti.relationships.store import EdgeStore
from graffiti.schemas.relationship import (
    Consistency,
    CountOut,
    MutualFriendsOut,
    SuggestionOut,
    SuggestionsOut,
)

logger = logging.getLogger(__name__)


class AggregateViews:
    def __init__(self, database: Database, refresh_interval: int | None = None) -> None:
        self._database = database
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None else settings.SNAPSHOT_REFRESH_INTERVAL_SECONDS
        )

    # Live counts

    def friend_count(self, user_id: UUID) -> CountOut:
        with self._database.session() as db, db.begin():
            return CountOut(count=EdgeStore(db).count_friends(user_id), consistency=Consistency.LIVE)

    def pending_request_count(self, user_id: UUID) -> CountOut:
        with self._database.session() as db, db.begin():
            return CountOut(count=EdgeStore(db).count_pending_received(user_id), consistency=Consistency.LIVE)

    def sent_request_count(self, user_id: UUID) -> CountOut:
        with self._database.session() as db, db.begin():
            return CountOut(count=EdgeStore(db).count_pending_sent(user_id), consistency=Consistency.LIVE)

    # Snapshot-backed

    def refresh_snapshot(self) -> int:
        """Rebuild accepted_friendships_mv from the friendships table.

        Runs as one transaction, so readers see either the old snapshot or the
        new one. Returns the number of rows in the new snapshot.
        """
        accepted = union(
            select(Friendship.from_user.label("user_id"), Friendship.to_user.label("friend_id")).where(
                Friendship.status == FriendshipStatus.FRIENDS
            ),
            select(Friendship.to_user.label("user_id"), Friendship.from_user.label("friend_id")).where(
                Friendship.status == FriendshipStatus.FRIENDS
            ),
        ).subquery()

        with self._database.session() as db, db.begin():
            db.execute(delete(AcceptedFriendship))
            db.execute(
                insert(AcceptedFriendship).from_select(
                    ["user_id", "friend_id", "refreshed_at"],
                    select(accepted.c.user_id, accepted.c.friend_id, func.now()),
                )
            )
            rows = db.execute(select(func.count()).select_from(AcceptedFriendship)).scalar_one()

        logger.info("Refreshed accepted_friendships_mv (%d rows)", rows)
        return rows

    def snapshot_refreshed_at(self) -> datetime | None:
        with self._database.session() as db, db.begin():
            return self._as_of(db)

    def mutual_friend_count(self, user_id: UUID, other_user_id: UUID) -> CountOut:
        mine = aliased(AcceptedFriendship)
        theirs = aliased(AcceptedFriendship)
        with self._database.session() as db, db.begin():
            count = db.execute(
                select(func.count())
                .select_from(mine)
                .join(theirs, theirs.friend_id == mine.friend_id)
                .where(mine.user_id == user_id, theirs.user_id == other_user_id)
            ).scalar_one()
            return CountOut(
                count=count,
                consistency=Consistency.SNAPSHOT,
                as_of=self._as_of(db),
                max_staleness_seconds=self.refresh_interval,
            )

    def list_mutual_friends(self, user_id: UUID, other_user_id: UUID) -> MutualFriendsOut:
        mine = aliased(AcceptedFriendship)
        theirs = aliased(AcceptedFriendship)
        with self._database.session() as db, db.begin():
            ids = db.execute(
                select(mine.friend_id)
                .join(theirs, theirs.friend_id == mine.friend_id)
                .where(mine.user_id == user_id, theirs.user_id == other_user_id)
                .order_by(mine.friend_id)
            ).scalars().all()
            return MutualFriendsOut(
                user_ids=list(ids),
                as_of=self._as_of(db),
                max_staleness_seconds=self.refresh_interval,
            )

    def discover_by_mutuals(self, user_id: UUID, limit: int = 20) -> SuggestionsOut:
        """Friends of friends, ranked by how many friends they share with the user.

        Skips the user, people already in the user's snapshot friends, and
        anyone on either side of a block with the user (checked live).
        """
        mine = aliased(AcceptedFriendship)
        fof = aliased(AcceptedFriendship)
        already = select(AcceptedFriendship.friend_id).where(AcceptedFriendship.user_id == user_id)
        blocked = exists().where(
            Friendship.status == FriendshipStatus.BLOCKED,
            or_(
                and_(Friendship.from_user == user_id, Friendship.to_user == fof.friend_id),
                and_(Friendship.from_user == fof.friend_id, Friendship.to_user == user_id),
            ),
        )
        mutuals = func.count().label("mutuals")

        with self._database.session() as db, db.begin():
            rows = db.execute(
                select(fof.friend_id, mutuals)
                .select_from(mine)
                .join(fof, fof.user_id == mine.friend_id)
                .where(
                    mine.user_id == user_id,
                    fof.friend_id != user_id,
                    fof.friend_id.not_in(already),
                    ~blocked,
                )
                .group_by(fof.friend_id)
                .order_by(mutuals.desc(), fof.friend_id)
                .limit(limit)
            ).all()
            return SuggestionsOut(
                suggestions=[SuggestionOut(user_id=uid, mutual_friend_count=n) for uid, n in rows],
                as_of=self._as_of(db),
                max_staleness_seconds=self.refresh_interval,
            )

    @staticmethod
    def _as_of(db: Session) -> datetime | None:
        return db.execute(select(func.max(AcceptedFriendship.refreshed_at))).scalar_one()
