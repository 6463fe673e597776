"""Transactional friendship operations.

Every public method is one unit of work: open a transaction, lock the pair,
re-read the pair's edges, validate, write, commit. Any error rolls the whole
operation back, so accept's two writes never land half-applied.

A friendship is two rows, one per direction, both with status ``friends``.
A block is a single row owned by the blocker. Pair state is always derived by
reading edges, never stored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from graffiti.db.session import Database
from graffiti.models.friendship import Friendship, FriendshipStatus
from graffiti.relationships.exceptions import (
    InvalidRelationshipState,
    RelationshipConflict,
    RelationshipError,
    RelationshipForbidden,
    RelationshipNotFound,
    RelationshipStoreError,
    SelfRelationshipError,
)
from graffiti.relationships.store import EdgeStore
from graffiti.schemas.relationship import EdgeOut, PairState, RelationshipState

logger = logging.getLogger(__name__)


def _out(edge: Friendship) -> EdgeOut:
    return EdgeOut.model_validate(edge)


def _guard_not_self(user_id: UUID, other_user_id: UUID) -> None:
    if user_id == other_user_id:
        raise SelfRelationshipError()


def derive_pair_state(edges: list[Friendship]) -> PairState:
    blocked = [e for e in edges if e.status == FriendshipStatus.BLOCKED]
    out = [_out(e) for e in edges]
    if blocked:
        return PairState(state=RelationshipState.BLOCKED, blocked_by=[e.from_user for e in blocked], edges=out)
    if any(e.status == FriendshipStatus.FRIENDS for e in edges):
        return PairState(state=RelationshipState.FRIENDS, edges=out)
    pending = next((e for e in edges if e.status == FriendshipStatus.PENDING), None)
    if pending is not None:
        return PairState(state=RelationshipState.PENDING, initiator=pending.from_user, edges=out)
    return PairState(state=RelationshipState.NONE)


class RelationshipEngine:
    def __init__(self, database: Database) -> None:
        self._database = database

    @contextmanager
    def _transaction(self) -> Iterator[EdgeStore]:
        with self._database.session() as db:
            try:
                with db.begin():
                    yield EdgeStore(db)
            except RelationshipError:
                raise
            except SQLAlchemyError as e:
                logger.exception("Relationship transaction rolled back")
                raise RelationshipStoreError(str(e)) from e

    # Mutations

    def create_friend_request(self, from_user: UUID, to_user: UUID) -> EdgeOut:
        """Send a one-way pending request ``from_user -> to_user``.

        Raises RelationshipForbidden when ``to_user`` has blocked ``from_user``
        and RelationshipConflict when any edge already exists for the pair.
        """
        _guard_not_self(from_user, to_user)
        with self._transaction() as store:
            store.lock_pair(from_user, to_user)
            existing = store.list_between(from_user, to_user, for_update=True)

            if any(
                e.from_user == to_user and e.status == FriendshipStatus.BLOCKED for e in existing
            ):
                logger.info("Friend request %s -> %s refused: blocked", from_user, to_user)
                raise RelationshipForbidden("cannot send friend request, you are blocked by the user")
            if existing:
                logger.info("Friend request %s -> %s refused: relationship exists", from_user, to_user)
                raise RelationshipConflict("a relationship already exists between these users")

            edge = store.insert(from_user, to_user, FriendshipStatus.PENDING)
            result = _out(edge)

        logger.info("Friend request %s created: %s -> %s", result.id, from_user, to_user)
        return result

    def accept_friend_request(self, edge_id: UUID, acting_user: UUID | None = None) -> EdgeOut:
        """Turn a pending edge into a mutual friendship.

        Inserts the reciprocal ``to_user -> from_user`` edge and flips the
        original to ``friends`` in the same transaction. ``acting_user``, when
        given, must be the recipient of the request.
        """
        with self._transaction() as store:
            edge = store.get_by_id(edge_id)
            store.lock_pair(edge.from_user, edge.to_user)
            edge = store.get_by_id(edge_id, for_update=True)

            if edge.status != FriendshipStatus.PENDING:
                raise InvalidRelationshipState("friendship is not in pending state")
            if acting_user is not None and acting_user != edge.to_user:
                if acting_user == edge.from_user:
                    raise InvalidRelationshipState("only the recipient can accept a friend request")
                raise RelationshipForbidden("not a participant in this friendship")
            if store.find_by_pair(edge.to_user, edge.from_user, for_update=True) is not None:
                raise RelationshipConflict("a reverse relationship already exists between these users")

            store.insert(edge.to_user, edge.from_user, FriendshipStatus.FRIENDS)
            edge = store.update_status(edge.id, FriendshipStatus.FRIENDS)
            result = _out(edge)

        logger.info("Friend request %s accepted: %s <-> %s", edge_id, result.from_user, result.to_user)
        return result

    def reject_friend_request(self, edge_id: UUID, acting_user: UUID | None = None) -> None:
        """Delete a pending request. The sender rejecting it is a cancel."""
        with self._transaction() as store:
            edge = store.get_by_id(edge_id)
            store.lock_pair(edge.from_user, edge.to_user)
            edge = store.get_by_id(edge_id, for_update=True)

            if edge.status != FriendshipStatus.PENDING:
                raise InvalidRelationshipState("friendship is not in pending state")
            if acting_user is not None and acting_user not in (edge.from_user, edge.to_user):
                raise RelationshipForbidden("not a participant in this friendship")

            store.delete(edge.id)

        logger.info("Friend request %s rejected", edge_id)

    def remove_friend(self, user_id: UUID, other_user_id: UUID) -> int:
        """Unfriend: delete both directions of the friendship."""
        _guard_not_self(user_id, other_user_id)
        with self._transaction() as store:
            store.lock_pair(user_id, other_user_id)
            friends = [
                e
                for e in store.list_between(user_id, other_user_id, for_update=True)
                if e.status == FriendshipStatus.FRIENDS
            ]
            if not friends:
                raise RelationshipNotFound("not friends")
            for e in friends:
                store.delete(e.id)

        logger.info("Friendship %s <-> %s removed (%d edges)", user_id, other_user_id, len(friends))
        return len(friends)

    def block_user(self, from_user: UUID, to_user: UUID) -> EdgeOut:
        """``from_user`` blocks ``to_user``.

        The block always lives on the ``from_user -> to_user`` edge: an
        existing edge in that direction is overwritten in place, otherwise a
        new one is inserted. Whatever the other direction held (a pending
        request, the reciprocal friendship row) is discarded, unless it is the
        other user's own block on us.
        """
        _guard_not_self(from_user, to_user)
        with self._transaction() as store:
            store.lock_pair(from_user, to_user)
            existing = store.list_between(from_user, to_user, for_update=True)
            own = next((e for e in existing if e.from_user == from_user), None)
            reverse = next((e for e in existing if e.from_user == to_user), None)

            if own is None:
                own = store.insert(from_user, to_user, FriendshipStatus.BLOCKED)
            elif own.status != FriendshipStatus.BLOCKED:
                own = store.update_status(own.id, FriendshipStatus.BLOCKED)

            if reverse is not None and reverse.status != FriendshipStatus.BLOCKED:
                store.delete(reverse.id)

            result = _out(own)

        logger.info("User %s blocked %s", from_user, to_user)
        return result

    def unblock_user(self, from_user: UUID, to_user: UUID) -> None:
        with self._transaction() as store:
            store.lock_pair(from_user, to_user)
            edge = store.find_by_pair(from_user, to_user, for_update=True)
            if edge is None or edge.status != FriendshipStatus.BLOCKED:
                raise InvalidRelationshipState("no blocked relationship to unblock")
            store.delete(edge.id)

        logger.info("User %s unblocked %s", from_user, to_user)

    # Queries

    def is_blocked(self, from_user: UUID, to_user: UUID) -> bool:
        """True iff ``from_user`` has blocked ``to_user``. The reverse is not checked."""
        with self._transaction() as store:
            edge = store.find_by_pair(from_user, to_user)
            return edge is not None and edge.status == FriendshipStatus.BLOCKED

    def is_friend(self, user_id: UUID, other_user_id: UUID) -> bool:
        with self._transaction() as store:
            return any(
                e.status == FriendshipStatus.FRIENDS
                for e in store.list_between(user_id, other_user_id)
            )

    def list_friends(self, user_id: UUID) -> list[EdgeOut]:
        # One edge per friend, preferring the row this user owns.
        with self._transaction() as store:
            by_friend: dict[UUID, Friendship] = {}
            for e in store.list_by_user(user_id, status=FriendshipStatus.FRIENDS):
                other = e.to_user if e.from_user == user_id else e.from_user
                if other not in by_friend or e.from_user == user_id:
                    by_friend[other] = e
            return [_out(e) for e in sorted(by_friend.values(), key=lambda e: e.id)]

    def list_pending_received(self, user_id: UUID) -> list[EdgeOut]:
        with self._transaction() as store:
            return [
                _out(e)
                for e in store.list_by_user(user_id, status=FriendshipStatus.PENDING)
                if e.to_user == user_id
            ]

    def list_pending_sent(self, user_id: UUID) -> list[EdgeOut]:
        with self._transaction() as store:
            return [
                _out(e)
                for e in store.list_by_user(user_id, status=FriendshipStatus.PENDING)
                if e.from_user == user_id
            ]

    def get_friendship(self, edge_id: UUID) -> EdgeOut:
        with self._transaction() as store:
            return _out(store.get_by_id(edge_id))

    def get_pair_state(self, user_id: UUID, other_user_id: UUID) -> PairState:
        with self._transaction() as store:
            return derive_pair_state(store.list_between(user_id, other_user_id))
