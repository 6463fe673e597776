import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

import graffiti.models  # noqa: F401
from graffiti.db.base import Base
from graffiti.db.session import Database
from graffiti.models.friendship import FriendshipStatus
from graffiti.relationships.engine import RelationshipEngine
from graffiti.relationships.exceptions import (
    InvalidRelationshipState,
    RelationshipConflict,
    RelationshipForbidden,
    RelationshipNotFound,
    RelationshipRuleViolation,
    RelationshipStoreError,
    SelfRelationshipError,
)
from graffiti.relationships.store import EdgeStore
from graffiti.schemas.relationship import RelationshipState


@pytest.fixture()
def database():
    db = Database("sqlite+pysqlite:///:memory:", poolclass=StaticPool).open()
    Base.metadata.create_all(bind=db.engine)
    yield db
    db.close()


@pytest.fixture()
def engine(database):
    return RelationshipEngine(database)


def pair_edges(database, a, b):
    with database.session() as db, db.begin():
        return [(e.from_user, e.to_user, e.status) for e in EdgeStore(db).list_between(a, b)]


def test_friend_request_flow(engine, database):
    u1, u2 = uuid.uuid4(), uuid.uuid4()

    # u1 sends request to u2
    req = engine.create_friend_request(u1, u2)
    assert req.status == FriendshipStatus.PENDING
    assert pair_edges(database, u1, u2) == [(u1, u2, FriendshipStatus.PENDING)]

    incoming = engine.list_pending_received(u2)
    assert [r.id for r in incoming] == [req.id]
    assert [r.id for r in engine.list_pending_sent(u1)] == [req.id]
    assert engine.list_pending_received(u1) == []
    assert engine.get_pair_state(u2, u1).state == RelationshipState.PENDING
    assert engine.get_pair_state(u2, u1).initiator == u1

    # u2 accepts
    accepted = engine.accept_friend_request(req.id, acting_user=u2)
    assert accepted.id == req.id
    assert accepted.status == FriendshipStatus.FRIENDS

    assert sorted(pair_edges(database, u1, u2), key=lambda e: e[0] != u1) == [
        (u1, u2, FriendshipStatus.FRIENDS),
        (u2, u1, FriendshipStatus.FRIENDS),
    ]
    f1 = engine.list_friends(u1)
    f2 = engine.list_friends(u2)
    assert len(f1) == 1
    assert len(f2) == 1
    assert (f1[0].from_user, f1[0].to_user) == (u1, u2)
    assert (f2[0].from_user, f2[0].to_user) == (u2, u1)
    assert engine.is_friend(u1, u2)
    assert engine.is_friend(u2, u1)
    assert engine.list_pending_received(u2) == []
    assert engine.get_pair_state(u1, u2).state == RelationshipState.FRIENDS


def test_duplicate_request_conflicts(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    engine.create_friend_request(a, b)

    with pytest.raises(RelationshipConflict):
        engine.create_friend_request(a, b)
    with pytest.raises(RelationshipConflict):
        engine.create_friend_request(b, a)

    assert pair_edges(database, a, b) == [(a, b, FriendshipStatus.PENDING)]


def test_request_conflicts_with_existing_friendship(engine):
    a, b = uuid.uuid4(), uuid.uuid4()
    engine.accept_friend_request(engine.create_friend_request(a, b).id)

    with pytest.raises(RelationshipConflict):
        engine.create_friend_request(a, b)
    with pytest.raises(RelationshipConflict):
        engine.create_friend_request(b, a)


def test_request_conflicts_with_own_block(engine):
    a, b = uuid.uuid4(), uuid.uuid4()
    engine.block_user(a, b)

    # The blocker is not forbidden, but a relationship already exists.
    with pytest.raises(RelationshipConflict):
        engine.create_friend_request(a, b)


def test_cannot_befriend_yourself(engine):
    me = uuid.uuid4()
    with pytest.raises(SelfRelationshipError) as exc:
        engine.create_friend_request(me, me)
    assert exc.value.reason == "self_relationship"
    assert isinstance(exc.value, InvalidRelationshipState)


def test_accept_missing_request(engine):
    with pytest.raises(RelationshipNotFound):
        engine.accept_friend_request(uuid.uuid4())


def test_accept_twice_is_invalid_state(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)
    engine.accept_friend_request(req.id)

    with pytest.raises(InvalidRelationshipState):
        engine.accept_friend_request(req.id)
    assert len(pair_edges(database, a, b)) == 2


def test_only_recipient_can_accept(engine, database):
    a, b, stranger = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)

    with pytest.raises(InvalidRelationshipState):
        engine.accept_friend_request(req.id, acting_user=a)
    with pytest.raises(RelationshipForbidden):
        engine.accept_friend_request(req.id, acting_user=stranger)

    assert pair_edges(database, a, b) == [(a, b, FriendshipStatus.PENDING)]


def test_accept_refuses_when_reverse_edge_exists(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)
    # Corrupt the pair behind the engine's back: a reverse row already exists.
    with database.session() as db, db.begin():
        EdgeStore(db).insert(b, a, FriendshipStatus.PENDING)

    with pytest.raises(RelationshipConflict):
        engine.accept_friend_request(req.id)

    assert engine.get_friendship(req.id).status == FriendshipStatus.PENDING
    assert not engine.is_friend(a, b)


def test_accept_rolls_back_reciprocal_when_update_fails(engine, database, monkeypatch):
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)

    def broken_update(self, edge_id, status):
        raise OperationalError("UPDATE friendships", {}, Exception("connection lost"))

    monkeypatch.setattr(EdgeStore, "update_status", broken_update)
    with pytest.raises(RelationshipStoreError) as exc:
        engine.accept_friend_request(req.id)
    assert exc.value.reason == "internal"
    monkeypatch.undo()

    # The reciprocal insert went away with the failed update.
    assert pair_edges(database, a, b) == [(a, b, FriendshipStatus.PENDING)]


def test_reject_deletes_request(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)

    engine.reject_friend_request(req.id, acting_user=b)
    assert pair_edges(database, a, b) == []
    assert engine.get_pair_state(a, b).state == RelationshipState.NONE

    # Nothing left to reject: a distinct failure, not a silent success.
    with pytest.raises(RelationshipNotFound):
        engine.reject_friend_request(req.id)

    # The pair is free again.
    engine.create_friend_request(b, a)


def test_sender_can_cancel_but_stranger_cannot(engine, database):
    a, b, stranger = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)

    with pytest.raises(RelationshipForbidden):
        engine.reject_friend_request(req.id, acting_user=stranger)
    engine.reject_friend_request(req.id, acting_user=a)
    assert pair_edges(database, a, b) == []


def test_reject_accepted_friendship_is_invalid(engine):
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)
    engine.accept_friend_request(req.id)

    with pytest.raises(InvalidRelationshipState):
        engine.reject_friend_request(req.id)


def test_remove_friend_deletes_both_rows(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    engine.accept_friend_request(engine.create_friend_request(a, b).id)

    assert engine.remove_friend(b, a) == 2
    assert pair_edges(database, a, b) == []
    assert engine.list_friends(a) == []
    assert engine.list_friends(b) == []

    with pytest.raises(RelationshipNotFound):
        engine.remove_friend(a, b)


def test_list_friends_with_many_friends(engine):
    me = uuid.uuid4()
    friends = [uuid.uuid4() for _ in range(3)]
    for i, other in enumerate(friends):
        # Mix who initiated.
        req = engine.create_friend_request(me, other) if i % 2 else engine.create_friend_request(other, me)
        engine.accept_friend_request(req.id)
    engine.create_friend_request(me, uuid.uuid4())

    listed = engine.list_friends(me)
    assert len(listed) == 3
    assert all(e.from_user == me for e in listed)
    assert {e.to_user for e in listed} == set(friends)


def test_list_friends_tolerates_single_row_friendship(engine, database):
    a, b = uuid.uuid4(), uuid.uuid4()
    with database.session() as db, db.begin():
        EdgeStore(db).insert(a, b, FriendshipStatus.FRIENDS)

    assert [(e.from_user, e.to_user) for e in engine.list_friends(b)] == [(a, b)]
    assert engine.is_friend(b, a)


def test_rule_violations_share_a_base(engine):
    a, b = uuid.uuid4(), uuid.uuid4()
    engine.create_friend_request(a, b)
    with pytest.raises(RelationshipRuleViolation) as exc:
        engine.create_friend_request(a, b)
    assert exc.value.reason == "conflict"
    assert str(exc.value) == "a relationship already exists between these users"
