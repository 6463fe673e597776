"""Transaction-aware CRUD over the friendships table.

Every method runs on a session the caller has already opened a transaction
on. Nothing here commits and nothing here enforces business rules: two
conflicting edges for the same pair are perfectly acceptable to the store.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, case, distinct, func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from graffiti.models.friendship import Friendship, FriendshipStatus
from graffiti.relationships.exceptions import ConstraintViolation, RelationshipNotFound


def _between(user_a: UUID, user_b: UUID):
    return or_(
        and_(Friendship.from_user == user_a, Friendship.to_user == user_b),
        and_(Friendship.from_user == user_b, Friendship.to_user == user_a),
    )


def _touching(user_id: UUID):
    return or_(Friendship.from_user == user_id, Friendship.to_user == user_id)


class EdgeStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def insert(self, from_user: UUID, to_user: UUID, status: FriendshipStatus) -> Friendship:
        edge = Friendship(from_user=from_user, to_user=to_user, status=status)
        self.db.add(edge)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConstraintViolation(f"friendships rejected {from_user} -> {to_user}: {e.orig}") from e
        return edge

    def get_by_id(self, edge_id: UUID, for_update: bool = False) -> Friendship:
        stmt = select(Friendship).where(Friendship.id == edge_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        edge = self.db.execute(stmt).scalars().one_or_none()
        if edge is None:
            raise RelationshipNotFound("friendship not found")
        return edge

    def find_by_pair(self, from_user: UUID, to_user: UUID, for_update: bool = False) -> Friendship | None:
        stmt = select(Friendship).where(
            Friendship.from_user == from_user,
            Friendship.to_user == to_user,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().one_or_none()

    def get_by_pair(self, from_user: UUID, to_user: UUID, for_update: bool = False) -> Friendship:
        edge = self.find_by_pair(from_user, to_user, for_update=for_update)
        if edge is None:
            raise RelationshipNotFound("no friendship in that direction")
        return edge

    def list_by_user(self, user_id: UUID, status: FriendshipStatus | None = None) -> list[Friendship]:
        stmt = select(Friendship).where(_touching(user_id))
        if status is not None:
            stmt = stmt.where(Friendship.status == status)
        return list(self.db.execute(stmt.order_by(Friendship.id)).scalars().all())

    def list_between(self, user_a: UUID, user_b: UUID, for_update: bool = False) -> list[Friendship]:
        stmt = select(Friendship).where(_between(user_a, user_b)).order_by(Friendship.id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> list[Friendship]:
        return list(self.db.execute(select(Friendship).order_by(Friendship.id)).scalars().all())

    def update_status(self, edge_id: UUID, status: FriendshipStatus) -> Friendship:
        edge = self.get_by_id(edge_id)
        edge.status = status
        edge.updated_at = func.now()
        self.db.flush()
        # Pull the database-assigned timestamp back in.
        self.db.refresh(edge)
        return edge

    def delete(self, edge_id: UUID) -> None:
        edge = self.get_by_id(edge_id)
        self.db.delete(edge)
        self.db.flush()

    def lock_pair(self, user_a: UUID, user_b: UUID) -> None:
        """Serialize writers touching the unordered pair ``{user_a, user_b}``.

        Postgres gets a transaction-scoped advisory lock, released on commit
        or rollback. It also covers the case where no row exists yet, which
        ``FOR UPDATE`` alone cannot lock. SQLite sessions already hold the
        database write lock from ``BEGIN IMMEDIATE``.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        low, high = sorted((user_a, user_b))
        self.db.execute(
            text("SELECT pg_advisory_xact_lock(hashtextextended(:pair_key, 0))"),
            {"pair_key": f"friendship:{low}:{high}"},
        )

    def count_friends(self, user_id: UUID) -> int:
        # Reciprocal rows would double count; count distinct counterparts instead.
        counterpart = case(
            (Friendship.from_user == user_id, Friendship.to_user),
            else_=Friendship.from_user,
        )
        return self.db.execute(
            select(func.count(distinct(counterpart))).where(
                _touching(user_id),
                Friendship.status == FriendshipStatus.FRIENDS,
            )
        ).scalar_one()

    def count_pending_received(self, user_id: UUID) -> int:
        return self.db.execute(
            select(func.count(Friendship.id)).where(
                Friendship.to_user == user_id,
                Friendship.status == FriendshipStatus.PENDING,
            )
        ).scalar_one()

    def count_pending_sent(self, user_id: UUID) -> int:
        return self.db.execute(
            select(func.count(Friendship.id)).where(
                Friendship.from_user == user_id,
                Friendship.status == FriendshipStatus.PENDING,
            )
        ).scalar_one()
