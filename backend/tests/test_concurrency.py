import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

import graffiti.models  # noqa: F401
from graffiti.db.base import Base
from graffiti.db.session import Database
from graffiti.models.friendship import FriendshipStatus
from graffiti.relationships.engine import RelationshipEngine
from graffiti.relationships.exceptions import (
    InvalidRelationshipState,
    RelationshipConflict,
    RelationshipForbidden,
)
from graffiti.relationships.store import EdgeStore

WORKERS = 8


@pytest.fixture()
def database(tmp_path):
    # A file database so every thread gets its own connection.
    db = Database(f"sqlite+pysqlite:///{tmp_path / 'graph.db'}", busy_timeout=30).open()
    Base.metadata.create_all(bind=db.engine)
    yield db
    db.close()


def run_concurrently(fn, n=WORKERS):
    barrier = threading.Barrier(n)

    def call(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(call, range(n)))


def test_concurrent_requests_create_one_edge(database):
    engine = RelationshipEngine(database)
    a, b = uuid.uuid4(), uuid.uuid4()

    results = run_concurrently(lambda _: engine.create_friend_request(a, b))

    conflicts = [r for r in results if isinstance(r, RelationshipConflict)]
    created = [r for r in results if not isinstance(r, Exception)]
    assert len(created) == 1
    assert len(conflicts) == WORKERS - 1

    with database.session() as db, db.begin():
        edges = EdgeStore(db).list_between(a, b)
        assert [(e.from_user, e.to_user, e.status) for e in edges] == [(a, b, FriendshipStatus.PENDING)]


def test_concurrent_accepts_create_one_reciprocal(database):
    engine = RelationshipEngine(database)
    a, b = uuid.uuid4(), uuid.uuid4()
    req = engine.create_friend_request(a, b)

    results = run_concurrently(lambda _: engine.accept_friend_request(req.id))

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert all(isinstance(r, InvalidRelationshipState) for r in results if isinstance(r, Exception))
    with database.session() as db, db.begin():
        assert len(EdgeStore(db).list_between(a, b)) == 2


def test_block_racing_requests_leaves_consistent_pair(database):
    engine = RelationshipEngine(database)
    a, b = uuid.uuid4(), uuid.uuid4()

    def request_or_block(i):
        if i == 0:
            return engine.block_user(b, a)
        return engine.create_friend_request(a, b)

    results = run_concurrently(request_or_block)
    assert all(
        isinstance(r, (RelationshipConflict, RelationshipForbidden)) for r in results if isinstance(r, Exception)
    )

    with database.session() as db, db.begin():
        edges = EdgeStore(db).list_between(a, b)
        assert [(e.from_user, e.to_user, e.status) for e in edges] == [(b, a, FriendshipStatus.BLOCKED)]


def test_reads_wait_out_concurrent_writes(database):
    engine = RelationshipEngine(database)
    me = uuid.uuid4()
    others = [uuid.uuid4() for _ in range(WORKERS // 2)]

    def write_or_read(i):
        if i % 2 == 0:
            return engine.create_friend_request(others[i // 2], me)
        return len(engine.list_pending_received(me))

    results = run_concurrently(write_or_read)

    # Readers queue behind writers instead of failing with "database is locked".
    assert not any(isinstance(r, Exception) for r in results)
    assert all(0 <= n <= len(others) for n in results[1::2])
    assert len(engine.list_pending_received(me)) == len(others)
